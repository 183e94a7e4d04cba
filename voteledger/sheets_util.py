"""
Spreadsheet sync — off-box backup of the ledger to Google Sheets.

Uses google-api-python-client (Sheets API v4) with a service-account key.
The ledger never depends on this module succeeding: every call logs and
swallows its own failures, and the service only runs it after the response
has been sent.

Environment variables (see ``config``):
    GOOGLE_SHEET_ID     Target spreadsheet; empty disables sync
    GOOGLE_CREDENTIALS  Path to the service-account JSON key

Sheets:
    Voters, Elections, Candidates, Votes, Audit — one per snapshot collection
"""
import asyncio
import logging
import os
from typing import Any

from google.oauth2 import service_account
from googleapiclient.discovery import build

from . import config
from .export import flatten

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]

SHEET_NAMES = {
    "voters": "Voters",
    "elections": "Elections",
    "candidates": "Candidates",
    "votes": "Votes",
    "audit": "Audit",
}


def sheet_values(rows: list[dict[str, Any]]) -> list[list[Any]]:
    """Header row (keys of the first record) followed by one row per record."""
    if not rows:
        return []
    headers = list(rows[0].keys())
    return [headers] + [[flatten(row.get(h)) for h in headers] for row in rows]


class SheetsSync:
    """Thin wrapper over the Sheets values API.

    ``service`` is any object shaped like ``build("sheets", "v4").spreadsheets()``;
    tests pass a fake.  ``enabled`` is False when no service could be built.
    """

    def __init__(self, spreadsheet_id: str, service=None):
        self.spreadsheet_id = spreadsheet_id
        self.service = service

    @property
    def enabled(self) -> bool:
        return bool(self.spreadsheet_id and self.service is not None)

    @classmethod
    def from_config(cls) -> "SheetsSync":
        if not config.GOOGLE_SHEET_ID:
            logger.info("GOOGLE_SHEET_ID not configured, spreadsheet sync disabled")
            return cls("", None)
        if not os.path.exists(config.GOOGLE_CREDENTIALS):
            logger.info("Google credentials not found, spreadsheet sync disabled")
            return cls("", None)
        try:
            credentials = service_account.Credentials.from_service_account_file(
                config.GOOGLE_CREDENTIALS, scopes=SCOPES,
            )
            service = build("sheets", "v4", credentials=credentials, cache_discovery=False)
        except Exception as e:
            logger.error(f"Could not initialise Google Sheets API: {e}")
            return cls("", None)
        logger.info("Google Sheets API initialised")
        return cls(config.GOOGLE_SHEET_ID, service.spreadsheets())

    # -- Blocking calls (run in a worker thread) ------------------------------

    def _append(self, sheet: str, row: list[Any]) -> None:
        self.service.values().append(
            spreadsheetId=self.spreadsheet_id,
            range=f"{sheet}!A:Z",
            valueInputOption="USER_ENTERED",
            body={"values": [row]},
        ).execute()

    def _overwrite(self, sheet: str, values: list[list[Any]]) -> None:
        self.service.values().clear(
            spreadsheetId=self.spreadsheet_id, range=f"{sheet}!A:Z", body={},
        ).execute()
        if values:
            self.service.values().update(
                spreadsheetId=self.spreadsheet_id,
                range=f"{sheet}!A1",
                valueInputOption="USER_ENTERED",
                body={"values": values},
            ).execute()

    # -- Async API ------------------------------------------------------------

    async def append_record(self, collection: str, record: dict[str, Any]) -> bool:
        """Append one record to its collection sheet.  Never raises."""
        if not self.enabled:
            return False
        sheet = SHEET_NAMES.get(collection, collection)
        row = [flatten(v) for v in record.values()]
        try:
            await asyncio.to_thread(self._append, sheet, row)
            return True
        except Exception as e:
            logger.error(f"Sheets append to {sheet} failed: {e}")
            return False

    async def sync_all(self, snapshot: dict[str, list[dict[str, Any]]]) -> dict[str, Any]:
        """Overwrite every collection sheet with the snapshot contents."""
        if not self.enabled:
            return {"success": False, "error": "Sheets not configured"}
        try:
            for collection, sheet in SHEET_NAMES.items():
                await asyncio.to_thread(
                    self._overwrite, sheet, sheet_values(snapshot.get(collection, []))
                )
        except Exception as e:
            logger.error(f"Sheets full sync failed: {e}")
            return {"success": False, "error": str(e)}

        counts = {name: len(snapshot.get(name, [])) for name in SHEET_NAMES}
        logger.info(f"Sync to Google Sheets complete: {counts}")
        return {"success": True, "counts": counts}
