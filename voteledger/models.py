"""
Ledger entities — the canonical schema shared by the store, the snapshot
and the wire format.

Attributes are snake_case in Python and camelCase on the wire
(``walletId``, ``totalVotes``...), so a snapshot written by one backend can be
read back by any other and handed to clients unchanged.

Organised by owner:
    1. Identity   — Voter
    2. Catalog    — Election, Candidate
    3. Ledger     — Vote
    4. Audit      — AuditEntry
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Treat naive datetimes as UTC so window comparisons never mix kinds."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class LedgerModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


# ══════════════════════════════════════════════════════════════════════════════
# 1. IDENTITY
# ══════════════════════════════════════════════════════════════════════════════

class Voter(LedgerModel):
    wallet_id: str
    name: str
    external_id: str
    email: str = ""
    registered_at: datetime = Field(default_factory=utcnow)
    status: Literal["active", "suspended"] = "active"


# ══════════════════════════════════════════════════════════════════════════════
# 2. CATALOG
# ══════════════════════════════════════════════════════════════════════════════

class Election(LedgerModel):
    election_id: int
    title: str
    description: str = ""
    start_at: datetime | None = None
    end_at: datetime | None = None
    status: Literal["active", "closed"] = "active"
    total_votes: int = 0
    created_at: datetime = Field(default_factory=utcnow)

    def is_open_at(self, now: datetime) -> bool:
        if self.status != "active":
            return False
        start = as_utc(self.start_at)
        end = as_utc(self.end_at)
        if start is not None and now < start:
            return False
        if end is not None and now > end:
            return False
        return True

    def summary(self) -> dict[str, Any]:
        return {
            "id": self.election_id,
            "title": self.title,
            "status": self.status,
            "totalVotes": self.total_votes,
        }


class Candidate(LedgerModel):
    election_id: int
    candidate_id: int
    name: str
    affiliation: str = ""
    votes: int = 0
    percentage: float = 0.0
    added_at: datetime = Field(default_factory=utcnow)


# ══════════════════════════════════════════════════════════════════════════════
# 3. LEDGER
# ══════════════════════════════════════════════════════════════════════════════

class Vote(LedgerModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    vote_id: int
    wallet_id: str
    election_id: int
    candidate_id: int
    cast_at: datetime = Field(default_factory=utcnow)
    external_tx_ref: str | None = None


# ══════════════════════════════════════════════════════════════════════════════
# 4. AUDIT
# ══════════════════════════════════════════════════════════════════════════════

class AuditEntry(LedgerModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    sequence: int
    timestamp: datetime = Field(default_factory=utcnow)
    action: str
    actor: str
    details: dict[str, Any] = Field(default_factory=dict)
    outcome: Literal["success", "error"]
    error_message: str | None = None
    previous_hash: str = ""
    entry_hash: str = ""
