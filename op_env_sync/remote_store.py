"""Contract for the remote secret store, plus an in-memory implementation."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional

from op_env_sync.errors import RemoteError, RemoteNotFoundError
from op_env_sync.logging_setup import get_logger

logger = get_logger()


@dataclass(frozen=True)
class RemoteRef:
    """Location of one remote item (and optionally one section of it).

    Instances are hashable and used as the key of per-run snapshot caches.
    """

    vault: str
    item: str
    section: Optional[str] = None

    def serialize(self) -> str:
        """Render as ``vault/item`` or ``vault/item/section``."""
        parts = [self.vault, self.item]
        if self.section:
            parts.append(self.section)
        return "/".join(parts)

    def field(self, name: str) -> "FieldRef":
        """Get a reference to one field of this item."""
        return FieldRef(item=self, name=name)

    def __str__(self) -> str:
        return self.serialize()


@dataclass(frozen=True)
class FieldRef:
    """Location of a single field inside a remote item."""

    item: RemoteRef
    name: str

    def serialize(self) -> str:
        """Render as a secret reference, e.g. ``op://vault/item/section/NAME``."""
        return f"op://{self.item.serialize()}/{self.name}"

    def __str__(self) -> str:
        return self.serialize()


@dataclass(frozen=True)
class FieldChange:
    """One field mutation in a batched remote write; ``value=None`` deletes."""

    name: str
    value: Optional[str] = None

    @property
    def is_delete(self) -> bool:
        """Check if this change removes the field."""
        return self.value is None


class RemoteStore(ABC):
    """Narrow read/write interface to a remote key/value item."""

    @abstractmethod
    def fetch(self, ref: RemoteRef) -> Optional[Dict[str, str]]:
        """Fetch all fields of an item.

        Args:
            ref: Item (and section) to read

        Returns:
            name -> value mapping, or None if the item does not exist

        Raises:
            RemoteError: If the store cannot be read
        """

    @abstractmethod
    def write_fields(self, ref: RemoteRef, changes: List[FieldChange]) -> None:
        """Apply a batch of field changes in a single call.

        The item is created if it does not exist yet.

        Args:
            ref: Item (and section) to modify
            changes: Field updates and deletions

        Raises:
            RemoteError: If the write fails
        """


class InMemoryRemoteStore(RemoteStore):
    """Dictionary-backed store for tests and offline experiments."""

    def __init__(
        self,
        items: Optional[Dict[RemoteRef, Dict[str, str]]] = None,
        vaults: Optional[List[str]] = None,
    ):
        """Initialize in-memory store.

        Args:
            items: Initial item contents keyed by reference
            vaults: Known vault names; defaults to the vaults used by ``items``.
                Writes to an unknown vault raise RemoteNotFoundError.
        """
        self.items: Dict[RemoteRef, Dict[str, str]] = {
            ref: dict(fields) for ref, fields in (items or {}).items()
        }
        self.vaults = set(vaults or []) | {ref.vault for ref in self.items}
        self.fetch_calls: List[RemoteRef] = []
        self.write_calls: List[List[FieldChange]] = []
        self.fail_fetch_with: Optional[RemoteError] = None
        self.fail_write_with: Optional[RemoteError] = None

    def fetch(self, ref: RemoteRef) -> Optional[Dict[str, str]]:
        self.fetch_calls.append(ref)
        if self.fail_fetch_with is not None:
            raise self.fail_fetch_with
        if ref.vault not in self.vaults:
            raise RemoteNotFoundError(f"Vault not found: {ref.vault}")
        fields = self.items.get(ref)
        return dict(fields) if fields is not None else None

    def write_fields(self, ref: RemoteRef, changes: List[FieldChange]) -> None:
        self.write_calls.append(list(changes))
        if self.fail_write_with is not None:
            raise self.fail_write_with
        if ref.vault not in self.vaults:
            raise RemoteNotFoundError(f"Vault not found: {ref.vault}")

        fields = self.items.setdefault(ref, {})
        for change in changes:
            if change.is_delete:
                fields.pop(change.name, None)
            else:
                fields[change.name] = change.value
        logger.debug(f"Applied {len(changes)} field changes to {ref}")
