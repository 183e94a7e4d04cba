"""
Request schemas — one pydantic model per dispatch action.

``LedgerRequest`` is a discriminated union on the ``action`` field, so every
payload parses into exactly one variant and the service can check that each
variant has a handler.  Fields are optional at this layer: "absent" is a
domain failure (MissingField / MissingParameters) raised by the ledger
itself, while wrong types are reported here as InvalidParameters.

Organised by bounded context:
    1. Identity    — registerVoter
    2. Catalog     — createElection, addCandidate, getActiveElections, getCandidates
    3. Voting      — castVote / recordVote, hasVoted
    4. Reporting   — getResults, getStats, getChartData, getAudit
    5. Common      — health, errors
"""
from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, ClassVar, Literal, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    TypeAdapter,
    ValidationError,
    model_validator,
)

from .errors import InvalidParameters, LedgerError, MissingParameters, UnsupportedAction


class ActionRequest(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    mutating: ClassVar[bool] = False

    @model_validator(mode="before")
    @classmethod
    def _blank_is_absent(cls, data: Any) -> Any:
        # the action tag is read before this runs and must stay untouched
        if not isinstance(data, dict):
            return data
        return {
            key: None if key != "action" and isinstance(value, str) and not value.strip() else value
            for key, value in data.items()
        }


# ══════════════════════════════════════════════════════════════════════════════
# 1. IDENTITY
# ══════════════════════════════════════════════════════════════════════════════

class RegisterVoterRequest(ActionRequest):
    mutating: ClassVar[bool] = True

    action: Literal["registerVoter"]
    wallet_id: str | None = Field(
        None, validation_alias=AliasChoices("walletId", "walletAddress", "wallet"))
    name: str | None = None
    id_number: str | None = Field(
        None, validation_alias=AliasChoices("idNumber", "externalId", "dni"))
    email: EmailStr | None = None


# ══════════════════════════════════════════════════════════════════════════════
# 2. CATALOG
# ══════════════════════════════════════════════════════════════════════════════

class CreateElectionRequest(ActionRequest):
    mutating: ClassVar[bool] = True

    action: Literal["createElection"]
    title: str | None = None
    description: str | None = None
    start_date: datetime | None = Field(
        None, validation_alias=AliasChoices("startDate", "startAt"))
    end_date: datetime | None = Field(
        None, validation_alias=AliasChoices("endDate", "endAt"))
    admin_address: str | None = Field(None, validation_alias="adminAddress")


class AddCandidateRequest(ActionRequest):
    mutating: ClassVar[bool] = True

    action: Literal["addCandidate"]
    election_id: int | None = Field(
        None, validation_alias=AliasChoices("electionId", "election"))
    name: str | None = None
    party: str | None = Field(
        None, validation_alias=AliasChoices("party", "affiliation", "proposal"))
    admin_address: str | None = Field(None, validation_alias="adminAddress")


class GetActiveElectionsRequest(ActionRequest):
    action: Literal["getActiveElections"]


class GetCandidatesRequest(ActionRequest):
    action: Literal["getCandidates"]
    election_id: int | None = Field(None, validation_alias="electionId")


# ══════════════════════════════════════════════════════════════════════════════
# 3. VOTING
# ══════════════════════════════════════════════════════════════════════════════

class CastVoteRequest(ActionRequest):
    mutating: ClassVar[bool] = True

    action: Literal["castVote", "recordVote"]
    wallet_id: str | None = Field(
        None, validation_alias=AliasChoices("walletId", "walletAddress", "voter", "from"))
    election_id: int | None = Field(None, validation_alias="electionId")
    candidate_id: int | None = Field(None, validation_alias="candidateId")
    tx_hash: str | None = Field(
        None, validation_alias=AliasChoices("txHash", "transactionHash", "externalTxRef"))


class HasVotedRequest(ActionRequest):
    action: Literal["hasVoted"]
    wallet_id: str | None = Field(
        None, validation_alias=AliasChoices("walletId", "walletAddress", "wallet"))
    election_id: int | None = Field(None, validation_alias="electionId")


# ══════════════════════════════════════════════════════════════════════════════
# 4. REPORTING
# ══════════════════════════════════════════════════════════════════════════════

class GetResultsRequest(ActionRequest):
    action: Literal["getResults"]
    election_id: int | None = Field(None, validation_alias="electionId")


class GetStatsRequest(ActionRequest):
    action: Literal["getStats"]


ChartType = Literal[
    "votersByDay", "votesHistory", "activityPerMinute",
    "participation", "candidatesByElection",
]


class GetChartDataRequest(ActionRequest):
    action: Literal["getChartData"]
    type: ChartType | None = None
    days: int | None = Field(None, ge=1, le=366)
    minutes: int | None = Field(None, ge=1, le=1440)
    election_id: int | None = Field(None, validation_alias="electionId")


class GetAuditRequest(ActionRequest):
    action: Literal["getAudit"]
    limit: int | None = Field(None, ge=1)


LedgerRequest = Annotated[
    Union[
        RegisterVoterRequest,
        CreateElectionRequest,
        AddCandidateRequest,
        GetActiveElectionsRequest,
        GetCandidatesRequest,
        CastVoteRequest,
        HasVotedRequest,
        GetResultsRequest,
        GetStatsRequest,
        GetChartDataRequest,
        GetAuditRequest,
    ],
    Field(discriminator="action"),
]

request_adapter: TypeAdapter = TypeAdapter(LedgerRequest)


def parse_request(payload: dict[str, Any]) -> ActionRequest:
    """Parse a raw payload into its request variant or raise a LedgerError."""
    action = payload.get("action")
    if action is None or (isinstance(action, str) and not action.strip()):
        raise MissingParameters("Action is required")
    try:
        return request_adapter.validate_python(payload)
    except ValidationError as exc:
        raise request_error(exc) from None


def request_error(exc: ValidationError) -> LedgerError:
    first = exc.errors()[0]
    if first["type"] == "union_tag_not_found":
        return MissingParameters("Action is required")
    if first["type"] == "union_tag_invalid":
        tag = first.get("ctx", {}).get("tag")
        return UnsupportedAction(f"Unsupported action: {tag!r}")
    problems = "; ".join(
        f"{'.'.join(str(p) for p in e['loc'][1:]) or 'payload'}: {e['msg']}"
        for e in exc.errors()
    )
    return InvalidParameters(f"Invalid parameters: {problems}")


# ══════════════════════════════════════════════════════════════════════════════
# 5. COMMON
# ══════════════════════════════════════════════════════════════════════════════

class HealthResponse(BaseModel):
    status: str
    service: str


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    message: str

