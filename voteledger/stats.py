"""
StatsAggregator — read-only dashboard projections.

Series are bucketed by UTC calendar day (``YYYY-MM-DD``) or by minute
(``HH:MM``) over a fixed window ending at ``now``.  Every bucket of the window
is reported, empty ones with 0, so charts keep a stable x-axis.
"""
from datetime import datetime, timedelta
from typing import Any, Iterable

from .catalog import CandidateRoster, ElectionCatalog
from .identity import IdentityStore
from .models import as_utc, utcnow
from .tally import percentage_of
from .votes import VoteLedger

DAY_FORMAT = "%Y-%m-%d"
MINUTE_FORMAT = "%H:%M"


def _series(stamps: Iterable[datetime], labels: list[str], fmt: str) -> dict[str, Any]:
    buckets = dict.fromkeys(labels, 0)
    for stamp in stamps:
        label = as_utc(stamp).strftime(fmt)
        if label in buckets:
            buckets[label] += 1
    return {"labels": labels, "data": [buckets[label] for label in labels]}


def day_labels(days: int, now: datetime) -> list[str]:
    today = as_utc(now)
    return [(today - timedelta(days=offset)).strftime(DAY_FORMAT)
            for offset in range(days - 1, -1, -1)]


def minute_labels(minutes: int, now: datetime) -> list[str]:
    current = as_utc(now).replace(second=0, microsecond=0)
    return [(current - timedelta(minutes=offset)).strftime(MINUTE_FORMAT)
            for offset in range(minutes - 1, -1, -1)]


class StatsAggregator:
    def __init__(self, identity: IdentityStore, catalog: ElectionCatalog,
                 roster: CandidateRoster, ledger: VoteLedger):
        self._identity = identity
        self._catalog = catalog
        self._roster = roster
        self._ledger = ledger

    def totals(self) -> dict[str, int]:
        return {
            "voters": len(self._identity),
            "elections": len(self._catalog),
            "candidates": len(self._roster),
            "votes": len(self._ledger),
        }

    # -- Time series ----------------------------------------------------------

    def registrations_per_day(self, days: int = 30, now: datetime | None = None) -> dict[str, Any]:
        labels = day_labels(days, now or utcnow())
        return _series((v.registered_at for v in self._identity.all()), labels, DAY_FORMAT)

    def votes_per_day(self, days: int = 30, now: datetime | None = None) -> dict[str, Any]:
        labels = day_labels(days, now or utcnow())
        return _series((v.cast_at for v in self._ledger.all()), labels, DAY_FORMAT)

    def votes_per_minute(self, minutes: int = 60, now: datetime | None = None) -> dict[str, Any]:
        now = as_utc(now or utcnow())
        earliest = now.replace(second=0, microsecond=0) - timedelta(minutes=minutes - 1)
        # minute labels repeat every day, so drop anything outside the window first
        recent = (v.cast_at for v in self._ledger.all() if earliest <= as_utc(v.cast_at) <= now)
        return _series(recent, minute_labels(minutes, now), MINUTE_FORMAT)

    # -- Participation --------------------------------------------------------

    def participation(self, election_id: int | None = None) -> dict[str, Any]:
        """Distinct voting wallets over registered voters."""
        if election_id is None:
            votes = self._ledger.all()
        else:
            votes = self._ledger.for_election(self._catalog.require(election_id).election_id)
        voted = len({v.wallet_id for v in votes})
        total = len(self._identity)
        return {
            "electionId": election_id,
            "votedVoters": voted,
            "totalVoters": total,
            "ratio": round(voted / total, 4) if total > 0 else 0.0,
        }

    def participation_by_election(self) -> list[dict[str, Any]]:
        total = len(self._identity)
        return [
            {
                "electionId": e.election_id,
                "title": e.title,
                "participation": percentage_of(e.total_votes, total),
            }
            for e in self._catalog.all()
        ]

    def candidates_by_election(self) -> list[dict[str, Any]]:
        return [
            {
                "electionId": e.election_id,
                "title": e.title,
                "candidates": [
                    {"name": c.name, "votes": c.votes}
                    for c in self._roster.list_for(e.election_id)
                ],
            }
            for e in self._catalog.all()
        ]
