"""
LedgerStore — the single owner of ledger state inside the service process.

Wires the identity store, election catalog, candidate roster, vote ledger,
tally engine, audit log and stats aggregator together and exposes only the
ledger operations.  One re-entrant lock covers every operation, so the
"already voted?" check and the vote append can never interleave with another
mutation, and reads never observe a half-recomputed tally.

Every mutating operation writes an audit entry whether it succeeds or fails;
failures are re-raised to the caller afterwards.
"""
import logging
import threading
from datetime import datetime
from typing import Any

from .audit import AuditLog
from .catalog import CandidateRoster, ElectionCatalog
from .errors import InvalidParameters, LedgerError, Unauthorized
from .identity import IdentityStore
from .models import AuditEntry, Candidate, Election, Vote, Voter, utcnow
from .security import normalize_wallet, validate_wallet
from .stats import StatsAggregator
from .tally import TallyEngine
from .votes import VoteLedger

logger = logging.getLogger(__name__)

COLLECTIONS = ("voters", "elections", "candidates", "votes", "audit")


def empty_snapshot() -> dict[str, list]:
    return {name: [] for name in COLLECTIONS}


def _unique(what: str, keys) -> None:
    seen = set()
    for key in keys:
        if key in seen:
            raise InvalidParameters(f"Snapshot has a duplicate {what}: {key}")
        seen.add(key)


def check_snapshot(voters: list[Voter], elections: list[Election], candidates: list[Candidate],
                   votes: list[Vote], audit: list[AuditEntry]) -> tuple[list[Voter], list[Vote]]:
    """Normalise wallet ids and reject records that break the ledger invariants.

    Returns the voters and votes with normalised wallets; raises
    ``InvalidWallet`` or ``InvalidParameters`` otherwise.
    """
    voters = [v.model_copy(update={"wallet_id": validate_wallet(v.wallet_id)}) for v in voters]
    votes = [v.model_copy(update={"wallet_id": normalize_wallet(v.wallet_id)}) for v in votes]

    _unique("voter wallet", (v.wallet_id for v in voters))
    _unique("election id", (e.election_id for e in elections))
    _unique("candidate id", ((c.election_id, c.candidate_id) for c in candidates))
    _unique("vote id", (v.vote_id for v in votes))
    _unique("vote for wallet and election", ((v.wallet_id, v.election_id) for v in votes))

    election_ids = {e.election_id for e in elections}
    for c in candidates:
        if c.election_id not in election_ids:
            raise InvalidParameters(f"Candidate {c.candidate_id} refers to unknown election {c.election_id}")

    candidate_keys = {(c.election_id, c.candidate_id) for c in candidates}
    for v in votes:
        if not v.wallet_id:
            raise InvalidParameters(f"Vote {v.vote_id} has no wallet")
        if v.election_id not in election_ids:
            raise InvalidParameters(f"Vote {v.vote_id} refers to unknown election {v.election_id}")
        if (v.election_id, v.candidate_id) not in candidate_keys:
            raise InvalidParameters(
                f"Vote {v.vote_id} refers to unknown candidate {v.candidate_id} "
                f"in election {v.election_id}"
            )

    if sorted(a.sequence for a in audit) != list(range(1, len(audit) + 1)):
        raise InvalidParameters("Audit sequence numbers must run from 1 without gaps")
    return voters, votes


class LedgerStore:
    def __init__(self, admin_addresses: list[str] | None = None):
        self.identity = IdentityStore()
        self.catalog = ElectionCatalog()
        self.roster = CandidateRoster(self.catalog)
        self.ledger = VoteLedger(self.catalog, self.roster)
        self.tally = TallyEngine(self.catalog, self.roster, self.ledger)
        self.audit = AuditLog()
        self.stats = StatsAggregator(self.identity, self.catalog, self.roster, self.ledger)
        self.admin_addresses = [normalize_wallet(a) for a in admin_addresses or []]
        self.lock = threading.RLock()

    # ── Helpers ──────────────────────────────────────────────────────────────

    def _failed(self, action: str, actor: str, details: dict, exc: LedgerError) -> None:
        self.audit.append(action, actor, details, "error", str(exc))

    def _authorize(self, admin_address: str | None) -> str:
        admin = normalize_wallet(admin_address)
        if self.admin_addresses and admin not in self.admin_addresses:
            raise Unauthorized("Not authorized: address is not an admin")
        return admin or "system"

    # ── Mutations ────────────────────────────────────────────────────────────

    def register_voter(self, wallet_id: str | None, name: str | None,
                       external_id: str | None, email: str | None = None) -> Voter:
        actor = normalize_wallet(wallet_id) or "unknown"
        with self.lock:
            try:
                voter = self.identity.register(wallet_id, name, external_id, email)
            except LedgerError as exc:
                self._failed("registerVoter", actor, {"name": name, "idNumber": external_id}, exc)
                raise
            self.audit.append("registerVoter", voter.wallet_id,
                              {"name": voter.name, "idNumber": voter.external_id})
            return voter

    def create_election(self, title: str | None, description: str | None = None,
                        start_at: datetime | None = None, end_at: datetime | None = None,
                        admin_address: str | None = None) -> Election:
        with self.lock:
            actor = normalize_wallet(admin_address) or "system"
            try:
                actor = self._authorize(admin_address)
                election = self.catalog.create(title, description, start_at, end_at)
            except LedgerError as exc:
                self._failed("createElection", actor, {"title": title}, exc)
                raise
            self.audit.append("createElection", actor,
                              {"title": election.title, "electionId": election.election_id})
            return election

    def add_candidate(self, election_id: int | None, name: str | None,
                      affiliation: str | None = None, admin_address: str | None = None) -> Candidate:
        with self.lock:
            actor = normalize_wallet(admin_address) or "system"
            try:
                actor = self._authorize(admin_address)
                candidate = self.roster.add(election_id, name, affiliation)
                self.tally.recompute(candidate.election_id)
            except LedgerError as exc:
                self._failed("addCandidate", actor, {"electionId": election_id, "name": name}, exc)
                raise
            self.audit.append("addCandidate", actor, {
                "electionId": candidate.election_id,
                "candidateId": candidate.candidate_id,
                "name": candidate.name,
            })
            return candidate

    def cast_vote(self, wallet_id: str | None, election_id: int | None,
                  candidate_id: int | None, external_tx_ref: str | None = None) -> Vote:
        actor = normalize_wallet(wallet_id) or "unknown"
        details = {"electionId": election_id, "candidateId": candidate_id}
        with self.lock:
            try:
                vote = self.ledger.cast(wallet_id, election_id, candidate_id, external_tx_ref)
            except LedgerError as exc:
                self._failed("castVote", actor, details, exc)
                raise
            self.tally.recompute(vote.election_id)
            self.audit.append("castVote", vote.wallet_id, {**details, "voteId": vote.vote_id})
            return vote

    # ── Reads ────────────────────────────────────────────────────────────────

    def active_elections(self, now: datetime | None = None) -> list[Election]:
        with self.lock:
            return [e.model_copy() for e in self.catalog.list_active(now or utcnow())]

    def candidates(self, election_id: int | None) -> list[Candidate]:
        with self.lock:
            return [c.model_copy() for c in self.roster.list_for(election_id)]

    def results(self, election_id: int | None) -> dict[str, Any]:
        with self.lock:
            return self.tally.results(election_id)

    def totals(self) -> dict[str, int]:
        with self.lock:
            return self.stats.totals()

    def has_voted(self, wallet_id: str | None, election_id: int | None) -> bool:
        with self.lock:
            return self.ledger.has_voted(wallet_id, election_id)

    def audit_entries(self, limit: int | None = None) -> list[AuditEntry]:
        with self.lock:
            return self.audit.entries(limit)

    # ── Snapshot ─────────────────────────────────────────────────────────────

    def snapshot(self) -> dict[str, list[dict[str, Any]]]:
        """Full ledger state as plain JSON-ready lists, in collection order."""
        with self.lock:
            return {
                "voters": [v.to_wire() for v in self.identity.all()],
                "elections": [e.to_wire() for e in self.catalog.all()],
                "candidates": [c.to_wire() for c in self.roster.all()],
                "votes": [v.to_wire() for v in self.ledger.all()],
                "audit": [a.to_wire() for a in self.audit.entries()],
            }

    def restore(self, snapshot: dict[str, Any]) -> None:
        """Replace all state with ``snapshot`` and rebuild the tallies from votes.

        Every record is parsed and checked before anything is replaced.  A
        malformed record raises ``pydantic.ValidationError``; records that break
        uniqueness, referential integrity or audit numbering raise a
        ``LedgerError``.  Either way state is left intact.
        """
        voters = [Voter.model_validate(v) for v in snapshot.get("voters") or []]
        elections = [Election.model_validate(e) for e in snapshot.get("elections") or []]
        candidates = [Candidate.model_validate(c) for c in snapshot.get("candidates") or []]
        votes = [Vote.model_validate(v) for v in snapshot.get("votes") or []]
        audit = [AuditEntry.model_validate(a) for a in snapshot.get("audit") or []]
        voters, votes = check_snapshot(voters, elections, candidates, votes, audit)

        with self.lock:
            self.identity.load(voters)
            self.catalog.load(elections)
            self.roster.load(candidates)
            self.ledger.load(votes)
            self.audit.load(audit)
            self.tally.recompute_all()
        logger.info(
            f"Ledger restored: {len(voters)} voters, {len(elections)} elections, "
            f"{len(candidates)} candidates, {len(votes)} votes"
        )

    def reset(self, actor: str = "admin") -> None:
        with self.lock:
            self.identity.clear()
            self.catalog.clear()
            self.roster.clear()
            self.ledger.clear()
            self.audit.clear()
            self.audit.append("resetLedger", actor, {"message": "Ledger reset"})
