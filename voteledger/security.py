"""
Ledger security utilities.

Covers:
  - Wallet-id normalisation and format validation
  - Admin-key hashing and verification (passlib)
  - Audit hash chain (SHA-256 over previous hash + canonical entry content)

Tamper evidence
---------------
Every audit entry stores the hash of its predecessor and its own hash,
computed as SHA-256(previous_hash || canonical_json(content)).  Editing,
dropping or reordering any entry breaks every later link, which
``verify_chain`` detects.  The first entry links to ``GENESIS_HASH``.
"""

import hashlib
import hmac
import json
import re
from typing import Any

from passlib.context import CryptContext

from .errors import InvalidWallet

# ---------------------------------------------------------------------------
# Wallet ids
# ---------------------------------------------------------------------------
WALLET_PATTERN = re.compile(r"^0x[0-9a-f]{40}$")


def normalize_wallet(wallet_id: str | None) -> str:
    """Lower-case and strip a wallet id; ``""`` for missing input."""
    return (wallet_id or "").strip().lower()


def validate_wallet(wallet_id: str) -> str:
    """Return the normalised wallet id or raise ``InvalidWallet``."""
    wallet = normalize_wallet(wallet_id)
    if not WALLET_PATTERN.match(wallet):
        raise InvalidWallet(f"Invalid wallet address: {wallet_id!r}")
    return wallet


# ---------------------------------------------------------------------------
# Admin key
# ---------------------------------------------------------------------------
key_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_admin_key(key: str) -> str:
    """Hash an admin key with pbkdf2-sha256 via passlib."""
    return key_context.hash(key)


def verify_admin_key(key: str | None, hashed: str) -> bool:
    """Verify a presented admin key against its stored hash."""
    if not key or not hashed:
        return False
    try:
        return key_context.verify(key, hashed)
    except ValueError:
        # malformed hash in configuration
        return False


# ---------------------------------------------------------------------------
# Hash utilities
# ---------------------------------------------------------------------------
GENESIS_HASH = "0" * 64


def canonical_json(data: Any) -> str:
    """Deterministic JSON used as hash input (sorted keys, no whitespace)."""
    return json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)


def create_hash_chain(previous_hash: str, current_data: Any) -> str:
    """Create a hash-chain entry: SHA-256(previous_hash || current_data)."""
    combined = f"{previous_hash}{canonical_json(current_data)}"
    return hashlib.sha256(combined.encode()).hexdigest()


def hashes_match(left: str, right: str) -> bool:
    return hmac.compare_digest(left, right)
