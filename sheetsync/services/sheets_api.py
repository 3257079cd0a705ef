"""
Remote sheets API client (GraphQL over HTTP).

Covers both collaborators the sync engine talks to:
- spreadsheet provider: list sheets, header row, rows from a start row, create file
- order backend: channel config create/update/delete, commit rows, linked account

Every failure (transport, HTTP status, GraphQL "errors", missing data) raises SheetsApiError.
"""
import logging
from typing import Any, Optional

import httpx

from sheetsync.config import settings
from sheetsync.services.http_client import post_no_retry, post_with_retry

logger = logging.getLogger(__name__)

SHEET_FIELDS = """
    id
    idFile
    nameSheet
    typeOrder
    autoSync
    lastRowSynced
    configWithOrderCollection {
      column
      field
    }
"""

ALL_GOOGLE_SHEETS = """
query GetAllGoogleSheets {
  allGoogleSheets {
    id
    email
    name
    sheets {%s}
  }
}
""" % SHEET_FIELDS

ALL_SHEETS_SPREADSHEET = """
query GetAllSheetsSpreadsheet($idGoogleSheets: ID, $spreadsheetId: ID) {
  allSheetsSpreadsheet(idGoogleSheets: $idGoogleSheets, spreadsheetId: $spreadsheetId) {
    id
    name
  }
}
"""

FIRST_ROW_SHEETS = """
query FirstRowSheets($idGoogleSheets: ID, $spreadsheetId: ID, $sheetName: String) {
  firstRowSheets(idGoogleSheets: $idGoogleSheets, spreadsheetId: $spreadsheetId, sheetName: $sheetName)
}
"""

ALL_ROWS_WITH_FIRST_ROW = """
query AllRowsSheetsWithFirstRow($idGoogleSheets: ID!, $spreadsheetId: ID!, $sheetName: String!, $startRow: Int!) {
  allRowsSheetsWithFirstRow(idGoogleSheets: $idGoogleSheets, spreadsheetId: $spreadsheetId, sheetName: $sheetName, startRow: $startRow)
}
"""

CREATE_SHEETS = """
mutation CreateSheetsToGoogleSheets($idGoogleSheets: ID!, $content: contentSheets!) {
  createSheetsToGoogleSheets(idGoogleSheets: $idGoogleSheets, content: $content) {
    status
    data {
      id
      sheets {%s}
    }
  }
}
""" % SHEET_FIELDS

UPDATE_SHEETS = """
mutation UpdateSheetsToGoogleSheets($idGoogleSheets: ID!, $id: ID!, $content: contentSheets!) {
  updateSheetsToGoogleSheets(idGoogleSheets: $idGoogleSheets, id: $id, content: $content) {
    status
  }
}
"""

DELETE_SHEETS = """
mutation DeleteSheetsFromGoogleSheets($idGoogleSheets: ID!, $id: ID!) {
  deleteSheetsFromGoogleSheets(idGoogleSheets: $idGoogleSheets, id: $id) {
    status
  }
}
"""

CREATE_MULTI_ORDER = """
mutation CreateMultiOrderFromSheets($idGoogleSheets: ID!, $idSheets: ID!, $startRow: Int!) {
  createMultiOrderFromSheets(idGoogleSheets: $idGoogleSheets, idSheets: $idSheets, startRow: $startRow) {
    status
    rowsCreated
  }
}
"""

CREATE_SPREADSHEET_FILE = """
mutation CreateSpreadsheetFile($idGoogleSheets: ID!, $title: String!) {
  createSpreadsheetFile(idGoogleSheets: $idGoogleSheets, title: $title) {
    id
    name
  }
}
"""

DELETE_GOOGLE_SHEETS = """
mutation DeleteGoogleSheets($id: ID!) {
  deleteGoogleSheets(id: $id) {
    status
  }
}
"""


class SheetsApiError(Exception):
    """Remote call failed or returned an unusable payload."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def get_client(token: Optional[str] = None) -> "SheetsApiClient":
    """Return a client instance. Token from env if not passed."""
    key = token or getattr(settings, "SHEETS_API_TOKEN", None) or ""
    return SheetsApiClient(
        base_url=settings.SHEETS_API_URL,
        token=key,
        timeout=settings.SHEETS_API_TIMEOUT,
        max_retries=settings.SHEETS_API_RETRIES,
    )


class SheetsApiClient:
    """
    GraphQL client for the spreadsheet provider and the order backend.
    POST {base_url} with {"query": ..., "variables": ...}
    Authorization: Bearer <token>
    """

    def __init__(self, base_url: str, token: str = "", timeout: float = 30.0, max_retries: int = 2):
        self.base_url = base_url
        self.token = token
        self.timeout = timeout
        self.max_retries = max_retries

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _execute(self, query: str, variables: Optional[dict] = None, *, mutation: bool = False) -> dict:
        payload = {"query": query, "variables": variables or {}}
        try:
            if mutation:
                resp = await post_no_retry(self.base_url, json=payload, headers=self._headers(), timeout=self.timeout)
            else:
                resp = await post_with_retry(
                    self.base_url,
                    json=payload,
                    headers=self._headers(),
                    timeout=self.timeout,
                    max_retries=self.max_retries,
                )
            resp.raise_for_status()
            body = resp.json()
        except httpx.HTTPStatusError as e:
            logger.warning("Sheets API HTTP error status=%s", e.response.status_code)
            raise SheetsApiError(f"HTTP {e.response.status_code}", status_code=e.response.status_code) from e
        except httpx.HTTPError as e:
            logger.warning("Sheets API transport error: %s", e)
            raise SheetsApiError(str(e) or e.__class__.__name__) from e
        except ValueError as e:
            raise SheetsApiError("Invalid JSON response from sheets API") from e

        errors = body.get("errors") if isinstance(body, dict) else None
        if errors:
            message = "; ".join(str(err.get("message", err)) for err in errors if err) or "GraphQL error"
            raise SheetsApiError(message)
        data = body.get("data") if isinstance(body, dict) else None
        if not isinstance(data, dict):
            raise SheetsApiError("Sheets API response has no data")
        return data

    # --- Linked account ---

    async def get_account(self, account_id: Optional[str] = None) -> Optional[dict]:
        """Linked spreadsheet account with its saved channel configs. First account when id is None."""
        data = await self._execute(ALL_GOOGLE_SHEETS)
        accounts = data.get("allGoogleSheets") or []
        if account_id:
            return next((a for a in accounts if str(a.get("id")) == str(account_id)), None)
        return accounts[0] if accounts else None

    async def delete_account(self, account_id: str) -> bool:
        data = await self._execute(DELETE_GOOGLE_SHEETS, {"id": account_id}, mutation=True)
        return bool((data.get("deleteGoogleSheets") or {}).get("status"))

    # --- Spreadsheet provider ---

    async def list_sheets(self, account_id: str, file_id: str) -> list[dict]:
        data = await self._execute(
            ALL_SHEETS_SPREADSHEET, {"idGoogleSheets": account_id, "spreadsheetId": file_id}
        )
        sheets = data.get("allSheetsSpreadsheet") or []
        return [{"id": s.get("id"), "name": s.get("name")} for s in sheets if s and s.get("name")]

    async def get_header_row(self, account_id: str, file_id: str, sheet_name: str) -> list[str]:
        data = await self._execute(
            FIRST_ROW_SHEETS,
            {"idGoogleSheets": account_id, "spreadsheetId": file_id, "sheetName": sheet_name},
        )
        row = data.get("firstRowSheets")
        if not isinstance(row, list):
            raise SheetsApiError("Header row missing from response")
        return [str(cell) for cell in row]

    async def get_rows(self, account_id: str, file_id: str, sheet_name: str, start_row: int) -> list[list[Any]]:
        """[header_row, row_at_start, row_at_start+1, ...]"""
        data = await self._execute(
            ALL_ROWS_WITH_FIRST_ROW,
            {
                "idGoogleSheets": account_id,
                "spreadsheetId": file_id,
                "sheetName": sheet_name,
                "startRow": start_row,
            },
        )
        rows = data.get("allRowsSheetsWithFirstRow")
        if rows is None:
            return []
        if not isinstance(rows, list):
            raise SheetsApiError("Rows payload is not a list")
        return [list(r) if isinstance(r, (list, tuple)) else [r] for r in rows]

    async def create_spreadsheet_file(self, account_id: str, title: str) -> dict:
        data = await self._execute(
            CREATE_SPREADSHEET_FILE, {"idGoogleSheets": account_id, "title": title}, mutation=True
        )
        created = data.get("createSpreadsheetFile") or {}
        if not created.get("id"):
            raise SheetsApiError("Spreadsheet file was not created")
        return {"id": created["id"], "name": created.get("name") or title}

    # --- Order backend ---

    async def create_channel_config(self, account_id: str, content: dict) -> dict:
        """Returns {"id": <saved config id>} for the config whose typeOrder matches content."""
        data = await self._execute(
            CREATE_SHEETS, {"idGoogleSheets": account_id, "content": content}, mutation=True
        )
        result = data.get("createSheetsToGoogleSheets") or {}
        if not result.get("status"):
            raise SheetsApiError("Channel config was not created")
        sheets = (result.get("data") or {}).get("sheets") or []
        saved = [s for s in sheets if s.get("typeOrder") == content.get("typeOrder")]
        if not saved:
            raise SheetsApiError("Created channel config missing from response")
        # Newest entry for this order type is the one just created
        return {"id": saved[-1]["id"]}

    async def update_channel_config(self, account_id: str, config_id: str, content: dict) -> dict:
        data = await self._execute(
            UPDATE_SHEETS,
            {"idGoogleSheets": account_id, "id": config_id, "content": content},
            mutation=True,
        )
        status = bool((data.get("updateSheetsToGoogleSheets") or {}).get("status"))
        if not status:
            raise SheetsApiError("Channel config update rejected")
        return {"status": status}

    async def delete_channel_config(self, account_id: str, config_id: str) -> dict:
        data = await self._execute(
            DELETE_SHEETS, {"idGoogleSheets": account_id, "id": config_id}, mutation=True
        )
        status = bool((data.get("deleteSheetsFromGoogleSheets") or {}).get("status"))
        if not status:
            raise SheetsApiError("Channel config delete rejected")
        return {"status": status}

    async def commit_rows(self, account_id: str, config_id: str, start_row: int) -> dict:
        """
        Ask the backend to create orders from rows at/after start_row using the saved mapping.
        Returns {"status": bool, "rowsCreated": Optional[int]}.
        """
        data = await self._execute(
            CREATE_MULTI_ORDER,
            {"idGoogleSheets": account_id, "idSheets": config_id, "startRow": start_row},
            mutation=True,
        )
        result = data.get("createMultiOrderFromSheets") or {}
        return {"status": bool(result.get("status")), "rowsCreated": result.get("rowsCreated")}
