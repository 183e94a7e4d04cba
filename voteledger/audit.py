"""
AuditLog — append-only trail of every attempted mutating action.

Entries are numbered 1, 2, 3... with no gaps and hash-chained to their
predecessor.  The log is informational: nothing reads it back to rebuild
votes or tallies.
"""
import logging
from typing import Any

from .models import AuditEntry
from .security import GENESIS_HASH, create_hash_chain, hashes_match

logger = logging.getLogger(__name__)


def _hash_content(entry: AuditEntry) -> dict[str, Any]:
    return entry.model_dump(mode="json", by_alias=True,
                            exclude={"previous_hash", "entry_hash"})


class AuditLog:
    def __init__(self):
        self._entries: list[AuditEntry] = []

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def head_hash(self) -> str:
        return self._entries[-1].entry_hash if self._entries else GENESIS_HASH

    def append(self, action: str, actor: str, details: dict[str, Any] | None = None,
               outcome: str = "success", error_message: str | None = None) -> AuditEntry | None:
        """Record an entry.  Never raises; failures go to the operational log."""
        try:
            previous = self.head_hash
            draft = AuditEntry(
                sequence=self._entries[-1].sequence + 1 if self._entries else 1,
                action=action,
                actor=actor or "unknown",
                details=details or {},
                outcome=outcome,
                error_message=error_message,
                previous_hash=previous,
            )
            entry = draft.model_copy(
                update={"entry_hash": create_hash_chain(previous, _hash_content(draft))}
            )
            self._entries.append(entry)
            return entry
        except Exception as e:
            logger.error(f"Failed to append audit entry for {action}: {e}")
            return None

    def entries(self, limit: int | None = None) -> list[AuditEntry]:
        if limit is not None and limit > 0:
            return self._entries[-limit:]
        return list(self._entries)

    def verify_chain(self) -> bool:
        previous = GENESIS_HASH
        for expected_sequence, entry in enumerate(self._entries, start=1):
            if entry.sequence != expected_sequence:
                return False
            if not hashes_match(entry.previous_hash, previous):
                return False
            if not hashes_match(entry.entry_hash, create_hash_chain(previous, _hash_content(entry))):
                return False
            previous = entry.entry_hash
        return True

    def load(self, entries: list[AuditEntry]) -> None:
        self._entries = sorted(entries, key=lambda e: e.sequence)

    def clear(self) -> None:
        self._entries = []
