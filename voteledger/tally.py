"""
TallyEngine — derives candidate and election counts from the VoteLedger.

``votes``, ``percentage`` and ``total_votes`` are caches.  They are always
rebuilt from the vote arena and never incremented in place, so running a
recompute twice, or on a freshly restored snapshot, gives the same result.
"""
from collections import Counter
from typing import Any

from .catalog import CandidateRoster, ElectionCatalog
from .votes import VoteLedger


def percentage_of(count: int, total: int) -> float:
    return round(count / total * 100, 2) if total > 0 else 0.0


class TallyEngine:
    def __init__(self, catalog: ElectionCatalog, roster: CandidateRoster, ledger: VoteLedger):
        self._catalog = catalog
        self._roster = roster
        self._ledger = ledger

    def recompute(self, election_id: int) -> None:
        election = self._catalog.require(election_id)
        votes = self._ledger.for_election(election.election_id)
        counts = Counter(v.candidate_id for v in votes)
        total = len(votes)

        for candidate in self._roster.list_for(election.election_id):
            candidate.votes = counts.get(candidate.candidate_id, 0)
            candidate.percentage = percentage_of(candidate.votes, total)
        election.total_votes = total

    def recompute_all(self) -> None:
        for election in self._catalog.all():
            self.recompute(election.election_id)

    def results(self, election_id: int | None) -> dict[str, Any]:
        """Election summary plus candidates by votes, ties in insertion order."""
        election = self._catalog.require(election_id)
        ranked = sorted(self._roster.list_for(election.election_id),
                        key=lambda c: c.votes, reverse=True)
        return {
            "election": election.summary(),
            "candidates": [
                {
                    "candidateId": c.candidate_id,
                    "name": c.name,
                    "party": c.affiliation,
                    "votes": c.votes,
                    "percentage": c.percentage,
                }
                for c in ranked
            ],
        }
