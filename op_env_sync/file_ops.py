"""Local file operations used by the sync engine."""

import os
import shutil
import tempfile
from pathlib import Path
from typing import Optional

from op_env_sync.errors import FileOpsError
from op_env_sync.logging_setup import get_logger

logger = get_logger()

OWNER_ONLY = 0o600


def read_text(path: str) -> Optional[str]:
    """Read a UTF-8 text file.

    Args:
        path: File to read

    Returns:
        File content, or None if the file does not exist

    Raises:
        FileOpsError: If the file exists but cannot be read
    """
    try:
        with open(path, "r", encoding="utf-8", newline="") as f:
            return f.read()
    except FileNotFoundError:
        return None
    except (OSError, UnicodeDecodeError) as e:
        logger.error(f"Failed to read file {path}: {e}")
        raise FileOpsError(f"Read failed: {e}") from e


def atomic_write_text(path: str, text: str, mode: int = OWNER_ONLY) -> None:
    """Write a text file so readers only ever see the old or the new content.

    The content goes to a temporary file in the target's directory, which is
    restricted to ``mode``, flushed to disk and then moved over the target
    with ``os.replace``.

    Args:
        path: Destination file
        text: Content to write
        mode: Permission bits of the written file

    Raises:
        FileOpsError: If any step fails; the target is left untouched
    """
    target = Path(path)
    tmp_path: Optional[Path] = None
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", dir=str(target.parent))
        tmp_path = Path(tmp_name)
        os.chmod(tmp_path, mode)
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, target)
        _fsync_directory(target.parent)
        logger.debug(f"Wrote {target} atomically")
    except OSError as e:
        logger.error(f"Failed to write file {path}: {e}")
        raise FileOpsError(f"Write failed: {e}") from e
    finally:
        if tmp_path is not None and tmp_path.exists():
            tmp_path.unlink(missing_ok=True)


def copy_file(src: str, dst: str, mode: int = OWNER_ONLY) -> None:
    """Copy file from source to destination and restrict its permissions.

    Args:
        src: Source file path
        dst: Destination file path
        mode: Permission bits of the copy

    Raises:
        FileOpsError: If copy fails
    """
    try:
        dst_path = Path(dst)
        dst_path.parent.mkdir(parents=True, exist_ok=True)

        shutil.copy2(src, dst)
        os.chmod(dst, mode)

        # Verify copy
        if not dst_path.exists():
            raise FileOpsError(f"Copy verification failed: {dst}")

        logger.debug(f"Copied file: {src} -> {dst}")
    except (OSError, shutil.Error) as e:
        logger.error(f"Failed to copy file {src} to {dst}: {e}")
        raise FileOpsError(f"Copy failed: {e}") from e


def delete_file(path: str) -> bool:
    """Delete a file if it exists.

    Args:
        path: File to delete

    Returns:
        True if a file was removed

    Raises:
        FileOpsError: If delete fails
    """
    try:
        Path(path).unlink()
        logger.info(f"Deleted file: {path}")
        return True
    except FileNotFoundError:
        return False
    except OSError as e:
        logger.error(f"Failed to delete file {path}: {e}")
        raise FileOpsError(f"Delete failed: {e}") from e


def _fsync_directory(directory: Path) -> None:
    """Flush a directory entry so a rename survives a crash (POSIX only)."""
    try:
        dir_fd = os.open(str(directory), os.O_DIRECTORY)
    except (OSError, AttributeError):
        return
    try:
        os.fsync(dir_fd)
    except OSError:
        pass
    finally:
        os.close(dir_fd)
