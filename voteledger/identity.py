"""IdentityStore — registered voters keyed by normalised wallet id."""
from .errors import DuplicateVoter, MissingField
from .models import Voter
from .security import normalize_wallet, validate_wallet


class IdentityStore:
    def __init__(self):
        self._voters: dict[str, Voter] = {}

    def __len__(self) -> int:
        return len(self._voters)

    def register(self, wallet_id: str | None, name: str | None,
                 external_id: str | None, email: str | None = None) -> Voter:
        """Register a voter once per wallet.

        Required fields are checked first, then the wallet format, then
        uniqueness.
        """
        name = (name or "").strip()
        external_id = (external_id or "").strip()
        if not normalize_wallet(wallet_id) or not name or not external_id:
            raise MissingField("Wallet, name and ID number are required")

        wallet = validate_wallet(wallet_id)
        if wallet in self._voters:
            raise DuplicateVoter(f"Voter already registered with wallet {wallet}")

        voter = Voter(
            wallet_id=wallet,
            name=name,
            external_id=external_id,
            email=(email or "").strip(),
        )
        self._voters[wallet] = voter
        return voter

    def exists(self, wallet_id: str | None) -> bool:
        return normalize_wallet(wallet_id) in self._voters

    def all(self) -> list[Voter]:
        return list(self._voters.values())

    def load(self, voters: list[Voter]) -> None:
        self._voters = {v.wallet_id: v for v in voters}

    def clear(self) -> None:
        self._voters.clear()
