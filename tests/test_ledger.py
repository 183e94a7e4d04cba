"""
Ledger core tests: identity, catalog, roster, vote ledger, tally and audit.

Stages follow the life of an election: register voters, open an election,
add candidates, cast votes, read results, then restore from a snapshot.
"""
import threading
from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from conftest import SCENARIO_WALLET, wallet
from voteledger.errors import (
    AlreadyVoted,
    CandidateNotFound,
    DuplicateVoter,
    ElectionNotFound,
    InvalidParameters,
    InvalidWallet,
    MissingField,
    MissingParameters,
    Unauthorized,
)
from voteledger.audit import AuditLog
from voteledger.store import LedgerStore, empty_snapshot
from voteledger.tally import percentage_of

ADMIN = "0x" + "b" * 40


# ─────────────────────────────────────────────────────────────────────────────
# Identity
# ─────────────────────────────────────────────────────────────────────────────

def test_register_normalises_wallet(ledger):
    voter = ledger.register_voter("  0x" + "AB" * 20 + " ", "Ana", "12345678", "ana@example.com")
    assert voter.wallet_id == "0x" + "ab" * 20
    assert voter.status == "active"
    assert ledger.identity.exists("0x" + "Ab" * 20)


def test_register_rejects_duplicate_wallet_in_any_case(ledger):
    ledger.register_voter(SCENARIO_WALLET, "Ana", "1")
    with pytest.raises(DuplicateVoter):
        ledger.register_voter(SCENARIO_WALLET.upper().replace("0X", "0x"), "Other", "2")
    assert ledger.totals()["voters"] == 1


@pytest.mark.parametrize("wallet_id,name,external_id", [
    ("", "Ana", "1"),
    (wallet(1), "  ", "1"),
    (wallet(1), "Ana", None),
])
def test_register_requires_all_fields(ledger, wallet_id, name, external_id):
    with pytest.raises(MissingField):
        ledger.register_voter(wallet_id, name, external_id)


@pytest.mark.parametrize("bad", ["0x123", "abc", "0x" + "g" * 40, "0x" + "a" * 41])
def test_register_rejects_malformed_wallet(ledger, bad):
    with pytest.raises(InvalidWallet):
        ledger.register_voter(bad, "Ana", "1")


# ─────────────────────────────────────────────────────────────────────────────
# Catalog and roster
# ─────────────────────────────────────────────────────────────────────────────

def test_election_ids_are_sequential(ledger):
    ids = [ledger.create_election(f"E{i}").election_id for i in range(3)]
    assert ids == [1, 2, 3]


def test_election_id_follows_max_after_restore(ledger):
    snapshot = empty_snapshot()
    snapshot["elections"] = [{"electionId": 7, "title": "Imported"}]
    ledger.restore(snapshot)
    assert ledger.create_election("Next").election_id == 8


def test_create_election_validation(ledger):
    with pytest.raises(MissingField):
        ledger.create_election("   ")
    start = datetime(2026, 5, 1, tzinfo=timezone.utc)
    with pytest.raises(InvalidParameters):
        ledger.create_election("Backwards", start_at=start, end_at=start - timedelta(days=1))
    assert ledger.totals()["elections"] == 0


def test_candidate_ids_are_per_election(ledger):
    first = ledger.create_election("First")
    second = ledger.create_election("Second")
    a = ledger.add_candidate(first.election_id, "A")
    b = ledger.add_candidate(first.election_id, "B")
    c = ledger.add_candidate(second.election_id, "C")
    assert (a.candidate_id, b.candidate_id, c.candidate_id) == (1, 2, 1)
    assert [x.name for x in ledger.candidates(first.election_id)] == ["A", "B"]


def test_add_candidate_errors(ledger):
    with pytest.raises(ElectionNotFound):
        ledger.add_candidate(99, "Ghost")
    election = ledger.create_election("E")
    with pytest.raises(MissingField):
        ledger.add_candidate(election.election_id, "")


def test_candidates_of_unknown_election_is_empty(ledger):
    assert ledger.candidates(42) == []


def test_active_elections_respect_window(ledger):
    now = datetime(2026, 6, 15, 12, 0, tzinfo=timezone.utc)
    open_ended = ledger.create_election("Always")
    ledger.create_election("Finished", start_at=now - timedelta(days=10),
                           end_at=now - timedelta(days=1))
    ledger.create_election("Upcoming", start_at=now + timedelta(days=1))
    running = ledger.create_election("Running", start_at=now - timedelta(hours=1),
                                     end_at=now + timedelta(hours=1))

    active = ledger.active_elections(now)
    assert [e.election_id for e in active] == [open_ended.election_id, running.election_id]


def test_closed_election_is_not_active(ledger):
    election = ledger.create_election("E")
    election.status = "closed"
    assert ledger.active_elections() == []


# ─────────────────────────────────────────────────────────────────────────────
# Admin gating
# ─────────────────────────────────────────────────────────────────────────────

def test_admin_addresses_gate_catalog_changes():
    ledger = LedgerStore(admin_addresses=[ADMIN.upper().replace("0X", "0x")])
    with pytest.raises(Unauthorized):
        ledger.create_election("Nope", admin_address=wallet(5))
    with pytest.raises(Unauthorized):
        ledger.create_election("Nope")

    election = ledger.create_election("Yes", admin_address=ADMIN)
    with pytest.raises(Unauthorized):
        ledger.add_candidate(election.election_id, "X", admin_address=wallet(5))
    candidate = ledger.add_candidate(election.election_id, "X", admin_address=ADMIN)
    assert candidate.candidate_id == 1

    actors = [(e.action, e.outcome, e.actor) for e in ledger.audit_entries()]
    assert ("createElection", "success", ADMIN) in actors
    assert ("createElection", "error", wallet(5)) in actors


def test_no_admin_list_means_no_gating(ledger):
    election = ledger.create_election("Open", admin_address=wallet(9))
    assert ledger.audit_entries()[-1].actor == wallet(9)
    assert election.election_id == 1


# ─────────────────────────────────────────────────────────────────────────────
# Voting and tallies
# ─────────────────────────────────────────────────────────────────────────────

def test_walkthrough_scenario(scenario):
    vote = scenario.cast_vote(SCENARIO_WALLET, 1, 1)
    assert vote.vote_id == 1

    results = scenario.results(1)
    assert results["election"]["totalVotes"] == 1
    alice, bob = results["candidates"]
    assert (alice["name"], alice["votes"], alice["percentage"]) == ("Alice", 1, 100.0)
    assert (bob["name"], bob["votes"], bob["percentage"]) == ("Bob", 0, 0.0)

    with pytest.raises(AlreadyVoted):
        scenario.cast_vote(SCENARIO_WALLET, 1, 2)
    assert scenario.results(1) == results


def test_one_vote_per_wallet_ignores_case(scenario):
    scenario.cast_vote(SCENARIO_WALLET, 1, 1)
    with pytest.raises(AlreadyVoted):
        scenario.cast_vote(SCENARIO_WALLET.replace("a", "A"), 1, 1)
    assert scenario.has_voted(SCENARIO_WALLET.upper().replace("0X", "0x"), 1)


def test_same_wallet_may_vote_in_each_election(scenario):
    second = scenario.create_election("E2")
    scenario.add_candidate(second.election_id, "Carol")
    scenario.cast_vote(SCENARIO_WALLET, 1, 2)
    scenario.cast_vote(SCENARIO_WALLET, second.election_id, 1)
    assert scenario.totals()["votes"] == 2
    assert not scenario.has_voted(wallet(2), 1)


def test_cast_vote_errors_in_order(scenario):
    with pytest.raises(MissingParameters):
        scenario.cast_vote(None, 1, 1)
    with pytest.raises(MissingParameters):
        scenario.cast_vote(SCENARIO_WALLET, 1, None)
    with pytest.raises(ElectionNotFound):
        scenario.cast_vote(SCENARIO_WALLET, 99, 1)
    with pytest.raises(CandidateNotFound):
        scenario.cast_vote(SCENARIO_WALLET, 1, 3)
    assert scenario.totals()["votes"] == 0
    assert not scenario.has_voted(SCENARIO_WALLET, 1)


def test_tally_matches_ledger(scenario):
    for n, candidate_id in enumerate([1, 2, 1, 1, 2, 1], start=10):
        scenario.cast_vote(wallet(n), 1, candidate_id)

    votes = scenario.ledger.for_election(1)
    candidates = scenario.candidates(1)
    assert sum(c.votes for c in candidates) == len(votes) == 6
    assert scenario.catalog.require(1).total_votes == 6
    for c in candidates:
        assert c.votes == sum(1 for v in votes if v.candidate_id == c.candidate_id)
        assert c.percentage == percentage_of(c.votes, 6)

    # referential integrity
    for v in scenario.ledger.all():
        assert scenario.roster.find(v.election_id, v.candidate_id) is not None


def test_percentages_close_to_hundred(scenario):
    scenario.add_candidate(1, "Carol")
    for n, candidate_id in enumerate([1, 2, 3], start=1):
        scenario.cast_vote(wallet(n), 1, candidate_id)

    percentages = [c["percentage"] for c in scenario.results(1)["candidates"]]
    assert percentages == [33.33, 33.33, 33.33]
    assert abs(sum(percentages) - 100) <= 0.01 * len(percentages)


def test_results_sorted_by_votes_ties_keep_insertion_order(scenario):
    scenario.add_candidate(1, "Carol")
    scenario.cast_vote(wallet(1), 1, 3)
    names = [c["name"] for c in scenario.results(1)["candidates"]]
    assert names == ["Carol", "Alice", "Bob"]


def test_recompute_is_idempotent(scenario):
    scenario.cast_vote(wallet(1), 1, 2)
    scenario.cast_vote(wallet(2), 1, 2)
    before = scenario.results(1)
    scenario.tally.recompute_all()
    scenario.tally.recompute_all()
    assert scenario.results(1) == before


def test_results_of_unknown_election(ledger):
    with pytest.raises(ElectionNotFound):
        ledger.results(5)


def test_zero_votes_gives_zero_percentages(scenario):
    assert all(c["percentage"] == 0.0 for c in scenario.results(1)["candidates"])


# ─────────────────────────────────────────────────────────────────────────────
# Audit trail
# ─────────────────────────────────────────────────────────────────────────────

def test_audit_records_successes_and_failures_without_gaps(scenario):
    scenario.cast_vote(SCENARIO_WALLET, 1, 1)
    with pytest.raises(AlreadyVoted):
        scenario.cast_vote(SCENARIO_WALLET, 1, 2)
    with pytest.raises(DuplicateVoter):
        scenario.register_voter(SCENARIO_WALLET, "Again", "ID-1")

    entries = scenario.audit_entries()
    assert [e.sequence for e in entries] == list(range(1, len(entries) + 1))
    assert [e.action for e in entries] == [
        "registerVoter", "createElection", "addCandidate", "addCandidate",
        "castVote", "castVote", "registerVoter",
    ]
    assert [e.outcome for e in entries][-3:] == ["success", "error", "error"]
    assert "already" in entries[-2].error_message.lower()


def test_audit_chain_verifies_and_detects_tampering(scenario):
    scenario.cast_vote(SCENARIO_WALLET, 1, 1)
    audit = scenario.audit
    assert audit.verify_chain()
    assert audit.entries()[0].previous_hash == "0" * 64
    for earlier, later in zip(audit.entries(), audit.entries()[1:]):
        assert later.previous_hash == earlier.entry_hash

    forged = audit._entries[1].model_copy(update={"actor": "0x" + "f" * 40})
    audit._entries[1] = forged
    assert not audit.verify_chain()


def test_audit_chain_detects_dropped_entry(scenario):
    del scenario.audit._entries[2]
    assert not scenario.audit.verify_chain()


def test_audit_limit_returns_latest(scenario):
    latest = scenario.audit_entries(limit=2)
    assert [e.sequence for e in latest] == [3, 4]


def test_audit_append_follows_last_sequence(scenario):
    log = AuditLog()
    log.load(scenario.audit_entries()[2:])
    assert log.append("castVote", wallet(1)).sequence == 5


# ─────────────────────────────────────────────────────────────────────────────
# Snapshot restore and reset
# ─────────────────────────────────────────────────────────────────────────────

def test_restore_rebuilds_tallies_from_votes(scenario):
    scenario.cast_vote(wallet(1), 1, 2)
    scenario.cast_vote(wallet(2), 1, 2)
    snapshot = scenario.snapshot()
    for candidate in snapshot["candidates"]:
        candidate["votes"] = 99
        candidate["percentage"] = 12.5
    snapshot["elections"][0]["totalVotes"] = 1000

    restored = LedgerStore()
    restored.restore(snapshot)
    assert restored.results(1) == scenario.results(1)
    assert restored.has_voted(wallet(1), 1)
    assert restored.audit.verify_chain()

    with pytest.raises(AlreadyVoted):
        restored.cast_vote(wallet(2), 1, 1)


def test_restore_rejects_malformed_snapshot_and_keeps_state(scenario):
    bad = scenario.snapshot()
    bad["votes"] = [{"voteId": 1, "walletId": wallet(1)}]
    with pytest.raises(ValidationError):
        scenario.restore(bad)
    assert scenario.totals() == {"voters": 1, "elections": 1, "candidates": 2, "votes": 0}


def test_reset_empties_ledger_and_audits(scenario):
    scenario.cast_vote(SCENARIO_WALLET, 1, 1)
    scenario.reset("operator")
    assert scenario.totals() == {"voters": 0, "elections": 0, "candidates": 0, "votes": 0}
    entries = scenario.audit_entries()
    assert [(e.sequence, e.action, e.actor) for e in entries] == [(1, "resetLedger", "operator")]
    assert scenario.create_election("Fresh").election_id == 1


def _with_vote(scenario):
    scenario.cast_vote(wallet(1), 1, 2)
    return scenario.snapshot()


def _duplicate_vote_pair(snapshot):
    snapshot["votes"].append({**snapshot["votes"][0], "voteId": 2, "candidateId": 1})


def _vote_for_unknown_candidate(snapshot):
    snapshot["votes"][0]["candidateId"] = 9


def _vote_in_unknown_election(snapshot):
    snapshot["votes"][0]["electionId"] = 4


def _voter_twice_in_mixed_case(snapshot):
    twin = SCENARIO_WALLET.upper().replace("0X", "0x")
    snapshot["voters"].append({**snapshot["voters"][0], "walletId": twin})


def _candidate_id_twice(snapshot):
    snapshot["candidates"][1]["candidateId"] = 1


def _candidate_in_unknown_election(snapshot):
    snapshot["candidates"][1]["electionId"] = 3


def _audit_sequence_gap(snapshot):
    del snapshot["audit"][1]


def _audit_not_starting_at_one(snapshot):
    snapshot["audit"] = snapshot["audit"][2:]


@pytest.mark.parametrize("corrupt", [
    _duplicate_vote_pair,
    _vote_for_unknown_candidate,
    _vote_in_unknown_election,
    _voter_twice_in_mixed_case,
    _candidate_id_twice,
    _candidate_in_unknown_election,
    _audit_sequence_gap,
    _audit_not_starting_at_one,
])
def test_restore_rejects_broken_invariants_and_keeps_state(scenario, corrupt):
    snapshot = _with_vote(scenario)
    before = scenario.snapshot()
    corrupt(snapshot)

    with pytest.raises(InvalidParameters):
        scenario.restore(snapshot)
    assert scenario.snapshot() == before
    assert scenario.has_voted(wallet(1), 1)


def test_restore_rejects_malformed_voter_wallet(scenario):
    snapshot = scenario.snapshot()
    snapshot["voters"][0]["walletId"] = "0x12"
    with pytest.raises(InvalidWallet):
        scenario.restore(snapshot)
    assert scenario.totals()["voters"] == 1


def test_restore_normalises_wallet_case(scenario):
    snapshot = _with_vote(scenario)
    snapshot["votes"][0]["walletId"] = wallet(1).upper().replace("0X", "0x")
    restored = LedgerStore()
    restored.restore(snapshot)
    with pytest.raises(AlreadyVoted):
        restored.cast_vote(wallet(1), 1, 1)


# ─────────────────────────────────────────────────────────────────────────────
# Concurrency
# ─────────────────────────────────────────────────────────────────────────────

def test_concurrent_casts_for_one_pair_record_one_vote(scenario):
    workers = 8
    barrier = threading.Barrier(workers)
    outcomes = []

    def cast():
        barrier.wait()
        try:
            scenario.cast_vote(wallet(1), 1, 1)
            outcomes.append("recorded")
        except AlreadyVoted:
            outcomes.append("already voted")

    threads = [threading.Thread(target=cast) for _ in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(outcomes) == ["already voted"] * (workers - 1) + ["recorded"]
    assert scenario.totals()["votes"] == 1
    assert scenario.results(1)["candidates"][0]["votes"] == 1
    assert scenario.audit.verify_chain()
