"""Shared fixtures for the ledger test suite."""
import pytest
from fastapi.testclient import TestClient

from voteledger import app as app_module
from voteledger import config
from voteledger.broadcast import Broadcaster
from voteledger.persistence import MemoryStore
from voteledger.sheets_util import SheetsSync
from voteledger.store import LedgerStore

ADMIN_KEY = "test-admin-key"


def wallet(n: int) -> str:
    """Deterministic, well-formed wallet id for voter ``n``."""
    return f"0x{n:040x}"


# Wallet used in the walkthrough scenario: 0xAAA...1
SCENARIO_WALLET = "0x" + "a" * 39 + "1"


@pytest.fixture
def ledger():
    return LedgerStore()


@pytest.fixture
def scenario(ledger):
    """One voter, election "E1" with Alice (1) and Bob (2), no votes yet."""
    ledger.register_voter(SCENARIO_WALLET, "Voter One", "ID-1")
    election = ledger.create_election("E1")
    ledger.add_candidate(election.election_id, "Alice", "Blue")
    ledger.add_candidate(election.election_id, "Bob", "Green")
    return ledger


@pytest.fixture
def memory_store():
    return MemoryStore()


@pytest.fixture
def make_client(monkeypatch):
    """Build a TestClient whose lifespan uses the given snapshot store."""
    opened = []

    def _make(store=None, admin_addresses=()):
        store = store if store is not None else MemoryStore()
        monkeypatch.setattr(app_module, "open_store", lambda: store)
        monkeypatch.setattr(app_module, "open_sheets", lambda: SheetsSync("", None))
        monkeypatch.setattr(app_module, "broadcaster", Broadcaster())
        monkeypatch.setattr(config, "ADMIN_KEY", ADMIN_KEY)
        monkeypatch.setattr(config, "ADMIN_KEY_HASH", "")
        monkeypatch.setattr(config, "ADMIN_ADDRESSES", [a.lower() for a in admin_addresses])
        client = TestClient(app_module.app)
        client.__enter__()
        opened.append(client)
        return client

    yield _make
    for client in opened:
        client.__exit__(None, None, None)


@pytest.fixture
def client(make_client, memory_store):
    return make_client(memory_store)
