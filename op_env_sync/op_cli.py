"""Remote store backed by the 1Password command line tool (``op``)."""

import json
import random
import re
import subprocess
import time
from typing import Dict, List, Optional, Tuple, Type

from op_env_sync.errors import (
    RemoteAuthError,
    RemoteError,
    RemoteNotFoundError,
    RemoteRateLimitedError,
    RemoteTimeoutError,
    RemoteUnknownError,
)
from op_env_sync.logging_setup import get_logger
from op_env_sync.remote_store import FieldChange, RemoteRef, RemoteStore

logger = get_logger()

ITEM_TAG = "op-env-sync"
ITEM_CATEGORY = "Secure Note"

# Checked in order; the first match decides how a failed call is treated.
_ERROR_PATTERNS: List[Tuple[re.Pattern, Type[RemoteError], bool]] = [
    (re.compile(r"rate limit|too many requests|\b429\b", re.I), RemoteRateLimitedError, True),
    (re.compile(r"timed out|timeout", re.I), RemoteTimeoutError, True),
    (
        re.compile(
            r"network|connection reset|connection refused|econnreset|econnrefused"
            r"|unreachable|temporarily unavailable|service unavailable|\b503\b"
            r"|could not resolve|name resolution|\bdns\b",
            re.I,
        ),
        RemoteUnknownError,
        True,
    ),
    (
        re.compile(
            r"not currently signed in|not signed in|not authenticated|authentication"
            r"|invalid token|unauthorized|session expired|permission denied|access denied",
            re.I,
        ),
        RemoteAuthError,
        False,
    ),
    (
        re.compile(r"isn't an item|isn't a vault|not found|no item|no vault|doesn't exist", re.I),
        RemoteNotFoundError,
        False,
    ),
]


def classify_error(stderr: str) -> Tuple[Type[RemoteError], bool]:
    """Map ``op`` error output to an error class and a retryable flag.

    Args:
        stderr: Error output of the failed command

    Returns:
        Tuple of (error class, whether the call may be retried)
    """
    for pattern, error_class, retryable in _ERROR_PATTERNS:
        if pattern.search(stderr):
            return error_class, retryable
    return RemoteUnknownError, False


def escape_assignment_name(name: str) -> str:
    """Escape periods, equal signs and backslashes in a field or section name."""
    return re.sub(r"([.=\\])", r"\\\1", name)


class OnePasswordCLIStore(RemoteStore):
    """Reads and writes item fields through the ``op`` CLI.

    Every CLI call is retried on transient failures (network errors, timeouts,
    rate limiting) with exponential backoff. Permanent failures such as
    authentication errors are raised immediately.
    """

    def __init__(
        self,
        op_binary: str = "op",
        timeout: float = 30.0,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        backoff_factor: float = 2.0,
        max_delay: float = 30.0,
        jitter: bool = True,
    ):
        """Initialize 1Password CLI store.

        Args:
            op_binary: Name or path of the ``op`` executable
            timeout: Seconds before a single CLI call is abandoned
            max_retries: Retries after the first attempt for transient errors
            retry_delay: Initial delay between retries in seconds
            backoff_factor: Multiplier applied to the delay after each retry
            max_delay: Upper bound for a single delay in seconds
            jitter: Whether to shave up to 25% off each delay at random
        """
        self.op_binary = op_binary
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.backoff_factor = backoff_factor
        self.max_delay = max_delay
        self.jitter = jitter

    @classmethod
    def from_config(cls, config) -> "OnePasswordCLIStore":
        """Build a store from the ``remote`` section of a Config."""
        return cls(
            op_binary=config.op_binary,
            timeout=config.remote_timeout,
            max_retries=config.max_retries,
            retry_delay=config.retry_delay,
            backoff_factor=config.backoff_factor,
            max_delay=config.max_delay,
            jitter=config.retry_jitter,
        )

    def fetch(self, ref: RemoteRef) -> Optional[Dict[str, str]]:
        logger.info(f"Fetching fields from 1Password: {ref}")
        try:
            output = self._run(
                ["item", "get", ref.item, "--vault", ref.vault, "--format", "json"],
                "get item from vault",
            )
        except RemoteNotFoundError as e:
            if not self._vault_exists(ref.vault):
                raise RemoteNotFoundError(f"Vault not found: {ref.vault}") from e
            logger.warning(f"Item not found in 1Password: {ref}")
            return None

        try:
            item = json.loads(output)
        except json.JSONDecodeError as e:
            raise RemoteUnknownError(f"Unexpected output from op item get: {e}") from e

        fields = self._extract_fields(item, ref.section)
        logger.info(f"Found {len(fields)} fields in 1Password")
        return fields

    def write_fields(self, ref: RemoteRef, changes: List[FieldChange]) -> None:
        if not changes:
            return

        assignments = [self._assignment(ref, change) for change in changes]
        try:
            self._run(
                ["item", "edit", ref.item, "--vault", ref.vault, *assignments],
                "update item",
            )
            logger.info(f"Updated {len(changes)} fields in 1Password item {ref}")
            return
        except RemoteNotFoundError:
            logger.info(f"Item {ref} does not exist yet; creating it")

        # A new item has nothing to delete
        create_assignments = [
            self._assignment(ref, change) for change in changes if not change.is_delete
        ]
        if not create_assignments:
            return

        self._run(
            [
                "item",
                "create",
                "--category",
                ITEM_CATEGORY,
                "--title",
                ref.item,
                "--vault",
                ref.vault,
                "--tags",
                ITEM_TAG,
                *create_assignments,
            ],
            "create item",
        )
        logger.info(f"Created 1Password item {ref} with {len(create_assignments)} fields")

    def _vault_exists(self, vault: str) -> bool:
        """Check whether a vault is visible to the signed-in account."""
        try:
            self._run(["vault", "get", vault, "--format", "json"], "get vault")
        except RemoteNotFoundError:
            return False
        return True

    @staticmethod
    def _extract_fields(item: dict, section: Optional[str]) -> Dict[str, str]:
        """Pick the env fields out of an ``op item get`` JSON document."""
        fields: Dict[str, str] = {}
        for field in item.get("fields", []):
            label = field.get("label")
            if not label:
                continue
            field_section = (field.get("section") or {}).get("label")
            if section:
                if field_section != section:
                    continue
            else:
                # Unsectioned custom fields only; skip built-ins such as notesPlain
                if field_section or field.get("purpose"):
                    continue
                if field.get("type") not in ("CONCEALED", "STRING"):
                    continue
            fields[label] = field.get("value") or ""
        return fields

    @staticmethod
    def _assignment(ref: RemoteRef, change: FieldChange) -> str:
        """Build an ``op`` assignment statement for one field change."""
        name = escape_assignment_name(change.name)
        if ref.section:
            name = f"{escape_assignment_name(ref.section)}.{name}"
        if change.is_delete:
            return f"{name}[delete]"
        return f"{name}[password]={change.value}"

    def _backoff_delay(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (0-based)."""
        delay = min(self.retry_delay * (self.backoff_factor**attempt), self.max_delay)
        if self.jitter:
            delay -= delay * random.uniform(0, 0.25)
        return delay

    def _run(self, args: List[str], description: str) -> str:
        """Run an ``op`` command with retries and return its stdout.

        Args:
            args: Arguments after the executable name
            description: Human readable description used in log messages

        Returns:
            Standard output of the command

        Raises:
            RemoteError: Subclass matching the failure once retries are exhausted
        """
        argv = [self.op_binary, *args]
        max_attempts = self.max_retries + 1

        for attempt in range(max_attempts):
            try:
                result = subprocess.run(
                    argv,
                    capture_output=True,
                    text=True,
                    timeout=self.timeout,
                    check=False,
                )
            except FileNotFoundError as e:
                raise RemoteUnknownError(
                    f"1Password CLI not found: {self.op_binary} (is it installed?)"
                ) from e
            except subprocess.TimeoutExpired:
                error_class: Type[RemoteError] = RemoteTimeoutError
                retryable = True
                message = f"{description} timed out after {self.timeout:g}s"
            else:
                if result.returncode == 0:
                    if attempt > 0:
                        logger.info(
                            f"Succeeded on attempt {attempt + 1}/{max_attempts}: {description}"
                        )
                    return result.stdout
                stderr = (result.stderr or "").strip()
                error_class, retryable = classify_error(stderr)
                first_line = stderr.splitlines()[0] if stderr else "no error output"
                message = f"{description} failed (exit code {result.returncode}): {first_line}"

            if not retryable:
                logger.debug(f"Non-retryable error: {message}")
                raise error_class(message)

            if attempt + 1 >= max_attempts:
                logger.error(f"Failed after {max_attempts} attempts: {description}")
                raise error_class(message)

            delay = self._backoff_delay(attempt)
            logger.warning(f"Attempt {attempt + 1}/{max_attempts} failed: {message}")
            logger.info(f"Retrying in {delay:.2f}s")
            time.sleep(delay)

        # max_attempts is always >= 1, so the loop returns or raises
        raise RemoteUnknownError(f"{description} failed")
