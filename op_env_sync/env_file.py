"""Parser and writer for the local .env file format.

Format rules:
    NAME=VALUE per line, optionally prefixed with ``export ``.
    Blank lines and full-line ``#`` comments are ignored.
    Double-quoted values understand the escapes \\n, \\r, \\" and \\\\.
    Single-quoted values are taken literally.
    Unquoted values run to the end of the line (surrounding whitespace is
    trimmed); nothing is interpolated and ``#`` is not a comment there.

The writer only emits what the parser reads back unchanged, so
``parse(serialize(env_vars)) == env_vars`` for every valid set.
"""

import re
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Tuple

from op_env_sync.errors import EnvParseError, MalformedKeyError, UnterminatedQuoteError
from op_env_sync.file_ops import read_text
from op_env_sync.logging_setup import get_logger

logger = get_logger()

# Ordered name -> value mapping; dicts keep insertion order.
EnvVarSet = Dict[str, str]

KEY_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
EXPORT_PREFIX = "export "

_UNESCAPES = {"n": "\n", "r": "\r", '"': '"', "\\": "\\"}


@dataclass
class EnvLine:
    """A single physical line of an env file."""

    line_number: int
    raw: str
    key: Optional[str] = None
    value: Optional[str] = None
    exported: bool = False

    def is_assignment(self) -> bool:
        """Check if this line assigns a variable."""
        return self.key is not None


def is_valid_name(name: str) -> bool:
    """Check if ``name`` can be used as a variable name in the file."""
    return bool(KEY_PATTERN.match(name))


def parse_lines(text: str) -> List[EnvLine]:
    """Parse content into one EnvLine per physical line.

    Args:
        text: Content of the env file

    Returns:
        List of EnvLine objects, comments and blanks included

    Raises:
        MalformedKeyError: If a line has no valid NAME= prefix
        UnterminatedQuoteError: If a quoted value is not closed
        EnvParseError: If text follows a closing quote
    """
    return [_parse_line(raw, number) for number, raw in enumerate(_split_lines(text), start=1)]


def parse(text: str) -> EnvVarSet:
    """Parse env file content into an ordered name -> value mapping.

    When a name is assigned more than once the last assignment wins and a
    warning is logged.

    Args:
        text: Content of the env file

    Returns:
        EnvVarSet in file order
    """
    env_vars: EnvVarSet = {}
    for line in parse_lines(text):
        if not line.is_assignment():
            continue
        if line.key in env_vars:
            logger.warning(
                f"line {line.line_number}: {line.key} is assigned more than once; "
                f"the last assignment wins"
            )
            # Re-insert so the surviving value keeps its file position
            del env_vars[line.key]
        env_vars[line.key] = line.value
    return env_vars


def format_value(value: str) -> str:
    """Render a value so that the parser reads back exactly ``value``."""
    if value == "":
        return ""
    if _needs_quotes(value):
        escaped = (
            value.replace("\\", "\\\\")
            .replace('"', '\\"')
            .replace("\n", "\\n")
            .replace("\r", "\\r")
        )
        return f'"{escaped}"'
    return value


def format_assignment(name: str, value: str) -> str:
    """Render a single NAME=VALUE line (without line terminator).

    Raises:
        MalformedKeyError: If ``name`` is not a valid variable name
    """
    if not is_valid_name(name):
        raise MalformedKeyError(f"invalid variable name {name!r}")
    return f"{name}={format_value(value)}"


def serialize(env_vars: Mapping[str, str]) -> str:
    """Render an EnvVarSet as env file content, one line per variable.

    Args:
        env_vars: Ordered name -> value mapping

    Returns:
        File content ending with a newline (empty string for an empty set)
    """
    lines = [format_assignment(name, value) for name, value in env_vars.items()]
    if not lines:
        return ""
    return "\n".join(lines) + "\n"


def apply_changes(text: str, changes: Mapping[str, Optional[str]]) -> str:
    """Apply variable changes to existing content, keeping its layout.

    Comments, blank lines and the order of untouched variables are preserved.
    An updated name is rewritten on its first line (later duplicates are
    dropped), a deleted name loses every line that assigns it, and new names
    are appended at the end in the order given.

    Args:
        text: Current file content
        changes: name -> new value, or None to delete the name

    Returns:
        Updated file content
    """
    newline = "\r\n" if "\r\n" in text else "\n"
    output: List[str] = []
    written = set()

    for line in parse_lines(text):
        if line.is_assignment() and line.key in changes:
            new_value = changes[line.key]
            if new_value is None or line.key in written:
                continue
            prefix = EXPORT_PREFIX if line.exported else ""
            output.append(prefix + format_assignment(line.key, new_value))
            written.add(line.key)
            continue
        output.append(line.raw)

    for name, value in changes.items():
        if value is not None and name not in written:
            output.append(format_assignment(name, value))

    if not output:
        return ""
    return newline.join(output) + newline


def read_env_file(path: str) -> Tuple[str, EnvVarSet]:
    """Read and parse an env file.

    Args:
        path: Path to the env file

    Returns:
        Tuple of (raw content, parsed variables); a missing file reads as
        empty content with no variables
    """
    text = read_text(path)
    if text is None:
        logger.warning(f"Local file does not exist: {path}")
        return "", {}
    env_vars = parse(text)
    logger.info(f"Found {len(env_vars)} variables in {path}")
    return text, env_vars


def _split_lines(text: str) -> List[str]:
    """Split on newlines only, dropping the terminator and a trailing CR."""
    if not text:
        return []
    lines = text.split("\n")
    if lines[-1] == "":
        lines.pop()
    return [line[:-1] if line.endswith("\r") else line for line in lines]


def _parse_line(raw: str, line_number: int) -> EnvLine:
    """Parse a single line into an EnvLine."""
    stripped = raw.strip()

    if not stripped or stripped.startswith("#"):
        return EnvLine(line_number=line_number, raw=raw)

    body = stripped
    exported = False
    if body.startswith(EXPORT_PREFIX):
        exported = True
        body = body[len(EXPORT_PREFIX) :].lstrip()

    if "=" not in body:
        raise MalformedKeyError("expected a NAME=VALUE assignment", line_number)

    key, _, rest = body.partition("=")
    key = key.strip()
    if not is_valid_name(key):
        raise MalformedKeyError(f"invalid variable name {key!r}", line_number)

    return EnvLine(
        line_number=line_number,
        raw=raw,
        key=key,
        value=_parse_value(rest, line_number),
        exported=exported,
    )


def _parse_value(rest: str, line_number: int) -> str:
    """Parse the text after ``=`` into a value."""
    value = rest.strip()
    if not value:
        return ""

    if value[0] == '"':
        return _parse_double_quoted(value, line_number)

    if value[0] == "'":
        end = value.find("'", 1)
        if end == -1:
            raise UnterminatedQuoteError("unterminated single-quoted value", line_number)
        _check_after_quote(value[end + 1 :], line_number)
        return value[1:end]

    return value


def _parse_double_quoted(value: str, line_number: int) -> str:
    """Parse a double-quoted value, resolving escapes."""
    chars = []
    i = 1
    while i < len(value):
        ch = value[i]
        if ch == "\\" and i + 1 < len(value) and value[i + 1] in _UNESCAPES:
            chars.append(_UNESCAPES[value[i + 1]])
            i += 2
            continue
        if ch == '"':
            _check_after_quote(value[i + 1 :], line_number)
            return "".join(chars)
        chars.append(ch)
        i += 1
    raise UnterminatedQuoteError("unterminated double-quoted value", line_number)


def _check_after_quote(tail: str, line_number: int) -> None:
    """Only whitespace or a comment may follow a closing quote."""
    tail = tail.strip()
    if tail and not tail.startswith("#"):
        raise EnvParseError("unexpected characters after closing quote", line_number)


def _needs_quotes(value: str) -> bool:
    """Check if a value cannot be written bare."""
    if value != value.strip():
        return True
    if value[0] in ("'", '"'):
        return True
    return any(ch in value for ch in ("\n", "\r", " ", "\t"))
