"""
VoteLedger — the append-only record of cast votes.

Votes live in a single arena list in cast order.  Two indexes sit on top:
positions per election (for tallies) and the set of (wallet, election) pairs
that already voted (for the one-vote rule).  Nothing ever removes or edits an
arena slot.
"""
from .catalog import CandidateRoster, ElectionCatalog
from .errors import AlreadyVoted, CandidateNotFound, MissingParameters
from .models import Vote
from .security import normalize_wallet


class VoteLedger:
    def __init__(self, catalog: ElectionCatalog, roster: CandidateRoster):
        self._catalog = catalog
        self._roster = roster
        self._votes: list[Vote] = []
        self._by_election: dict[int, list[int]] = {}
        self._voted: set[tuple[str, int]] = set()

    def __len__(self) -> int:
        return len(self._votes)

    def cast(self, wallet_id: str | None, election_id: int | None,
             candidate_id: int | None, external_tx_ref: str | None = None) -> Vote:
        """Append one vote.  Callers serialise calls; see ``LedgerStore``."""
        wallet = normalize_wallet(wallet_id)
        if not wallet or election_id is None or candidate_id is None:
            raise MissingParameters("walletId, electionId and candidateId are required")

        election = self._catalog.require(election_id)
        if self._roster.find(election.election_id, candidate_id) is None:
            raise CandidateNotFound(
                f"Candidate {candidate_id} not found in election {election_id}"
            )
        if (wallet, election.election_id) in self._voted:
            raise AlreadyVoted(f"Wallet {wallet} already voted in election {election_id}")

        vote = Vote(
            vote_id=self._votes[-1].vote_id + 1 if self._votes else 1,
            wallet_id=wallet,
            election_id=election.election_id,
            candidate_id=candidate_id,
            external_tx_ref=external_tx_ref or None,
        )
        self._append(vote)
        return vote

    def _append(self, vote: Vote) -> None:
        self._by_election.setdefault(vote.election_id, []).append(len(self._votes))
        self._votes.append(vote)
        self._voted.add((vote.wallet_id, vote.election_id))

    def has_voted(self, wallet_id: str | None, election_id: int | None) -> bool:
        return (normalize_wallet(wallet_id), election_id) in self._voted

    def for_election(self, election_id: int) -> list[Vote]:
        return [self._votes[i] for i in self._by_election.get(election_id, [])]

    def all(self) -> list[Vote]:
        return list(self._votes)

    def load(self, votes: list[Vote]) -> None:
        self.clear()
        for vote in sorted(votes, key=lambda v: v.vote_id):
            self._append(vote)

    def clear(self) -> None:
        self._votes = []
        self._by_election = {}
        self._voted = set()
