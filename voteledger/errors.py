"""Ledger error taxonomy.

Every domain failure carries a stable ``code`` that the dispatch boundary
reports as ``{"success": false, "error": code, "message": str(exc)}``.
"""


class LedgerError(Exception):
    code = "LedgerError"
    default_message = "Ledger operation failed"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)


class MissingField(LedgerError):
    code = "MissingField"
    default_message = "A required field is missing"


class MissingParameters(LedgerError):
    code = "MissingParameters"
    default_message = "Required parameters are missing"


class InvalidParameters(LedgerError):
    code = "InvalidParameters"
    default_message = "Parameters are invalid"


class UnsupportedAction(LedgerError):
    code = "UnsupportedAction"
    default_message = "Unsupported action"


class InvalidWallet(LedgerError):
    code = "InvalidWallet"
    default_message = "Invalid wallet address"


class DuplicateVoter(LedgerError):
    code = "DuplicateVoter"
    default_message = "Voter already registered with this wallet"


class AlreadyVoted(LedgerError):
    code = "AlreadyVoted"
    default_message = "Voter has already cast a vote in this election"


class ElectionNotFound(LedgerError):
    code = "ElectionNotFound"
    default_message = "Election not found"


class CandidateNotFound(LedgerError):
    code = "CandidateNotFound"
    default_message = "Candidate not found"


class Unauthorized(LedgerError):
    code = "Unauthorized"
    default_message = "Not authorized"


class PersistenceFailure(LedgerError):
    code = "PersistenceFailure"
    default_message = "Could not persist ledger state"
