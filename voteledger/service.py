"""
LedgerService — runs parsed requests against the LedgerStore.

Mutations go through one ``asyncio.Lock``: the store operation and the
snapshot flush complete before the next mutation starts, so snapshots land in
commit order.  Rejected mutations are flushed too, for their audit entry.  A
failed flush is logged and the in-memory commit stands; the next successful
flush carries it.

Handlers return an ``Outcome``: the response body plus, for mutations, the
notifications the HTTP layer fans out after the response is sent (the domain
event, then a ``system:log`` event per audit entry written, rejected attempts
included).
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, get_args

from pydantic import ValidationError

from .errors import InvalidParameters, LedgerError, MissingParameters, PersistenceFailure
from .models import utcnow
from .persistence import SnapshotStore
from .schemas import (
    ActionRequest,
    AddCandidateRequest,
    CastVoteRequest,
    CreateElectionRequest,
    ErrorResponse,
    GetActiveElectionsRequest,
    GetAuditRequest,
    GetCandidatesRequest,
    GetChartDataRequest,
    GetResultsRequest,
    GetStatsRequest,
    HasVotedRequest,
    LedgerRequest,
    RegisterVoterRequest,
)
from .store import LedgerStore

logger = logging.getLogger(__name__)


@dataclass
class Notification:
    event: str
    collection: str
    record: dict[str, Any]


@dataclass
class Outcome:
    body: dict[str, Any]
    notifications: list[Notification] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return bool(self.body.get("success"))


def failure(exc: LedgerError) -> dict[str, Any]:
    return ErrorResponse(error=exc.code, message=str(exc)).model_dump()


def request_variants() -> tuple[type, ...]:
    union, _ = get_args(LedgerRequest)
    return get_args(union)


class LedgerService:
    def __init__(self, ledger: LedgerStore, store: SnapshotStore):
        self.ledger = ledger
        self.store = store
        self._mutations = asyncio.Lock()
        self._handlers: dict[type, Callable[[Any], Outcome]] = {
            RegisterVoterRequest: self._register_voter,
            CreateElectionRequest: self._create_election,
            AddCandidateRequest: self._add_candidate,
            CastVoteRequest: self._cast_vote,
            GetActiveElectionsRequest: self._active_elections,
            GetCandidatesRequest: self._candidates,
            HasVotedRequest: self._has_voted,
            GetResultsRequest: self._results,
            GetStatsRequest: self._stats,
            GetChartDataRequest: self._chart_data,
            GetAuditRequest: self._audit,
        }
        unhandled = [v.__name__ for v in request_variants() if v not in self._handlers]
        if unhandled:
            raise TypeError(f"No handler for request variants: {', '.join(unhandled)}")

    # ── Execution ────────────────────────────────────────────────────────────

    async def execute(self, request: ActionRequest) -> Outcome:
        """Run one request.  Domain failures come back as a failed Outcome."""
        handler = self._handlers[type(request)]
        if not request.mutating:
            return self._run(handler, request)
        async with self._mutations:
            mark = len(self.ledger.audit)
            try:
                outcome = self._run(handler, request)
            finally:
                # rejected mutations still leave an audit entry to flush
                await self.persist()
            outcome.notifications.extend(
                Notification("system:log", "audit", entry.to_wire())
                for entry in self.ledger.audit.entries()[mark:]
            )
        return outcome

    def _run(self, handler: Callable[[Any], Outcome], request: ActionRequest) -> Outcome:
        try:
            return handler(request)
        except LedgerError as exc:
            logger.warning(f"{request.action} rejected: {exc.code}: {exc}")
            return Outcome(failure(exc))

    async def persist(self) -> bool:
        """Flush a full snapshot.  Returns False (and logs) on failure."""
        try:
            await self.store.save(self.ledger.snapshot())
            return True
        except PersistenceFailure as e:
            logger.error(f"Snapshot flush to {self.store.name} store failed, "
                         f"in-memory state kept: {e}")
        except Exception:
            logger.exception(f"Unexpected error flushing to {self.store.name} store, "
                             f"in-memory state kept")
        return False

    async def reset(self, actor: str = "admin") -> None:
        async with self._mutations:
            self.ledger.reset(actor)
            await self.persist()
        logger.warning(f"Ledger reset by {actor}")

    async def import_snapshot(self, snapshot: dict[str, Any], actor: str = "admin") -> dict[str, int]:
        """Replace the ledger with a new authoritative dataset."""
        async with self._mutations:
            try:
                self.ledger.restore(snapshot)
            except (ValidationError, TypeError) as e:
                raise InvalidParameters(f"Snapshot rejected: {e}") from e
            totals = self.ledger.totals()
            self.ledger.audit.append("importSnapshot", actor, totals)
            await self.persist()
        return totals

    # ── Mutations ────────────────────────────────────────────────────────────

    def _register_voter(self, req: RegisterVoterRequest) -> Outcome:
        voter = self.ledger.register_voter(req.wallet_id, req.name, req.id_number, req.email)
        record = voter.to_wire()
        return Outcome(
            {"success": True, "message": "Voter registered", "voter": record},
            [Notification("voter:registered", "voters", record)],
        )

    def _create_election(self, req: CreateElectionRequest) -> Outcome:
        election = self.ledger.create_election(
            req.title, req.description, req.start_date, req.end_date, req.admin_address,
        )
        record = election.to_wire()
        return Outcome(
            {
                "success": True,
                "message": f'Election "{election.title}" created with ID {election.election_id}',
                "electionId": election.election_id,
                "election": record,
            },
            [Notification("election:created", "elections", record)],
        )

    def _add_candidate(self, req: AddCandidateRequest) -> Outcome:
        candidate = self.ledger.add_candidate(
            req.election_id, req.name, req.party, req.admin_address,
        )
        record = candidate.to_wire()
        return Outcome(
            {
                "success": True,
                "message": "Candidate added",
                "candidateId": candidate.candidate_id,
                "candidate": record,
            },
            [Notification("candidate:added", "candidates", record)],
        )

    def _cast_vote(self, req: CastVoteRequest) -> Outcome:
        vote = self.ledger.cast_vote(req.wallet_id, req.election_id, req.candidate_id, req.tx_hash)
        record = vote.to_wire()
        return Outcome(
            {"success": True, "message": "Vote recorded", "vote": record},
            [Notification("vote:cast", "votes", record)],
        )

    # ── Reads ────────────────────────────────────────────────────────────────

    def _active_elections(self, req: GetActiveElectionsRequest) -> Outcome:
        elections = self.ledger.active_elections()
        return Outcome({"success": True, "elections": [e.to_wire() for e in elections]})

    def _candidates(self, req: GetCandidatesRequest) -> Outcome:
        if req.election_id is None:
            raise MissingParameters("electionId is required")
        candidates = self.ledger.candidates(req.election_id)
        return Outcome({"success": True, "candidates": [c.to_wire() for c in candidates]})

    def _has_voted(self, req: HasVotedRequest) -> Outcome:
        if not req.wallet_id or req.election_id is None:
            raise MissingParameters("walletId and electionId are required")
        return Outcome({
            "success": True,
            "hasVoted": self.ledger.has_voted(req.wallet_id, req.election_id),
        })

    def _results(self, req: GetResultsRequest) -> Outcome:
        if req.election_id is None:
            raise MissingParameters("electionId is required")
        return Outcome({"success": True, **self.ledger.results(req.election_id)})

    def _stats(self, req: GetStatsRequest) -> Outcome:
        stats = {**self.ledger.totals(), "lastUpdate": utcnow().isoformat()}
        return Outcome({"success": True, "stats": stats})

    def _chart_data(self, req: GetChartDataRequest) -> Outcome:
        stats = self.ledger.stats
        with self.ledger.lock:
            if req.type == "votersByDay":
                body = stats.registrations_per_day(req.days or 30)
            elif req.type == "votesHistory":
                body = stats.votes_per_day(req.days or 30)
            elif req.type == "activityPerMinute":
                body = stats.votes_per_minute(req.minutes or 60)
            elif req.type == "participation":
                body = {
                    "overall": stats.participation(req.election_id),
                    "data": stats.participation_by_election(),
                }
            elif req.type == "candidatesByElection":
                body = {"data": stats.candidates_by_election()}
            else:
                raise MissingParameters("Chart type is required")
        return Outcome({"success": True, "type": req.type, **body})

    def _audit(self, req: GetAuditRequest) -> Outcome:
        with self.ledger.lock:
            entries = [e.to_wire() for e in self.ledger.audit.entries(req.limit)]
            valid = self.ledger.audit.verify_chain()
        return Outcome({"success": True, "chainValid": valid, "entries": entries})
