"""
Election catalog and candidate roster.

Election ids are one past the current maximum (1 for an empty catalog).
Candidate ids are numbered per election, so two elections can both have a
candidate 1.
"""
from datetime import datetime

from .errors import ElectionNotFound, InvalidParameters, MissingField
from .models import Candidate, Election, as_utc


class ElectionCatalog:
    def __init__(self):
        self._elections: dict[int, Election] = {}

    def __len__(self) -> int:
        return len(self._elections)

    def create(self, title: str | None, description: str | None = None,
               start_at: datetime | None = None, end_at: datetime | None = None) -> Election:
        title = (title or "").strip()
        if not title:
            raise MissingField("Election title is required")

        start_at, end_at = as_utc(start_at), as_utc(end_at)
        if start_at is not None and end_at is not None and end_at < start_at:
            raise InvalidParameters("Election end date is before its start date")

        election = Election(
            election_id=max(self._elections, default=0) + 1,
            title=title,
            description=(description or "").strip(),
            start_at=start_at,
            end_at=end_at,
        )
        self._elections[election.election_id] = election
        return election

    def find(self, election_id: int | None) -> Election | None:
        if election_id is None:
            return None
        return self._elections.get(election_id)

    def require(self, election_id: int | None) -> Election:
        election = self.find(election_id)
        if election is None:
            raise ElectionNotFound(f"Election {election_id} not found")
        return election

    def list_active(self, now: datetime) -> list[Election]:
        now = as_utc(now)
        return [e for e in self._elections.values() if e.is_open_at(now)]

    def all(self) -> list[Election]:
        return list(self._elections.values())

    def load(self, elections: list[Election]) -> None:
        self._elections = {e.election_id: e for e in elections}

    def clear(self) -> None:
        self._elections.clear()


class CandidateRoster:
    def __init__(self, catalog: ElectionCatalog):
        self._catalog = catalog
        self._by_election: dict[int, list[Candidate]] = {}

    def __len__(self) -> int:
        return sum(len(c) for c in self._by_election.values())

    def add(self, election_id: int | None, name: str | None,
            affiliation: str | None = None) -> Candidate:
        election = self._catalog.require(election_id)
        name = (name or "").strip()
        if not name:
            raise MissingField("Candidate name is required")

        roster = self._by_election.setdefault(election.election_id, [])
        candidate = Candidate(
            election_id=election.election_id,
            candidate_id=len(roster) + 1,
            name=name,
            affiliation=(affiliation or "").strip(),
        )
        roster.append(candidate)
        return candidate

    def list_for(self, election_id: int | None) -> list[Candidate]:
        return list(self._by_election.get(election_id, []))

    def find(self, election_id: int | None, candidate_id: int | None) -> Candidate | None:
        for candidate in self._by_election.get(election_id, []):
            if candidate.candidate_id == candidate_id:
                return candidate
        return None

    def all(self) -> list[Candidate]:
        return [c for roster in self._by_election.values() for c in roster]

    def load(self, candidates: list[Candidate]) -> None:
        self._by_election = {}
        for candidate in candidates:
            self._by_election.setdefault(candidate.election_id, []).append(candidate)

    def clear(self) -> None:
        self._by_election.clear()
