import logging
from typing import Dict, List, NamedTuple

import gspread
from fastapi.concurrency import run_in_threadpool
from google.auth.exceptions import GoogleAuthError
from google.oauth2.service_account import Credentials
from gspread.exceptions import GSpreadException, WorksheetNotFound
from gspread.utils import rowcol_to_a1

from .database import Row, Store
from .errors import StorageError

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]
TOKEN_URI = "https://oauth2.googleapis.com/token"
# Sheets' own coercion turns "TRUE"/"40" into booleans/numbers like the web UI does
VALUE_INPUT = "USER_ENTERED"


class SheetRow(NamedTuple):
    # 1-based sheet row number plus the first cell it held when read
    number: int
    key: str


class SheetsStore(Store):
    name = "sheets"

    def __init__(self, sheet_id: str, client_email: str, private_key: str, client=None):
        self.sheet_id = sheet_id
        self.client_email = client_email
        self.private_key = private_key
        self._client = client

    def _authorize(self):
        if self._client is None:
            creds = Credentials.from_service_account_info(
                {
                    "type": "service_account",
                    "client_email": self.client_email,
                    "private_key": self.private_key,
                    "token_uri": TOKEN_URI,
                },
                scopes=SCOPES,
            )
            self._client = gspread.authorize(creds)
        return self._client

    def _spreadsheet(self):
        return self._authorize().open_by_key(self.sheet_id)

    def _worksheet(self, table: str):
        return self._spreadsheet().worksheet(table)

    async def _run(self, func, *args):
        try:
            return await run_in_threadpool(func, *args)
        except (GSpreadException, GoogleAuthError, ValueError, OSError) as e:
            # ValueError: malformed private key; OSError covers requests' network errors
            raise StorageError(f"Google Sheets request failed: {e}") from e

    # --- blocking helpers ---
    def _get_headers(self, table):
        try:
            ws = self._worksheet(table)
        except WorksheetNotFound:
            return None
        # blank header cells stay in place so column positions line up with the sheet
        return ws.row_values(1)

    def _create_table(self, table, headers):
        sh = self._spreadsheet()
        try:
            ws = sh.worksheet(table)
        except WorksheetNotFound:
            ws = sh.add_worksheet(title=table, rows=1000, cols=max(len(headers), 1))
        ws.update(range_name="A1", values=[headers], value_input_option=VALUE_INPUT)

    def _add_column(self, table, column, position, default):
        ws = self._worksheet(table)
        data_rows = max(len(ws.get_all_values()) - 1, 0)
        ws.insert_cols([[column] + [default] * data_rows], col=position + 1, value_input_option=VALUE_INPUT)

    def _get_rows(self, table):
        values = self._worksheet(table).get_all_values()
        if not values:
            return []
        headers = values[0]
        rows = []
        for offset, cells in enumerate(values[1:]):
            padded = list(cells) + [""] * (len(headers) - len(cells))
            record = {h: padded[i] for i, h in enumerate(headers) if h}
            if not any(record.values()):
                continue
            rows.append(Row(SheetRow(offset + 2, padded[0] if padded else ""), record))
        return rows

    def _locate(self, ws, table, row_id):
        # Another writer may have deleted a row above this one since it was read
        current = ws.row_values(row_id.number)
        if (current[0] if current else "") == row_id.key:
            return row_id.number, current
        for number, value in enumerate(ws.col_values(1)[1:], start=2):
            if value == row_id.key:
                logger.warning(f"{table} row {row_id.key!r} moved from {row_id.number} to {number}")
                return number, ws.row_values(number)
        raise StorageError(f"{table} row {row_id.key!r} is no longer in the sheet")

    def _append_rows(self, table, records):
        ws = self._worksheet(table)
        headers = ws.row_values(1)
        ws.append_rows(
            [[str(r.get(h, "")) if h else "" for h in headers] for r in records],
            value_input_option=VALUE_INPUT,
        )

    def _update_row(self, table, row_id, record):
        ws = self._worksheet(table)
        headers = ws.row_values(1)
        number, current = self._locate(ws, table, row_id)
        current = list(current) + [""] * (len(headers) - len(current))
        cells = [str(record[h]) if h in record else current[i] for i, h in enumerate(headers)]
        ws.update(range_name=rowcol_to_a1(number, 1), values=[cells], value_input_option=VALUE_INPUT)

    def _delete_row(self, table, row_id):
        ws = self._worksheet(table)
        number, _ = self._locate(ws, table, row_id)
        ws.delete_rows(number)

    # --- Store contract ---
    async def get_headers(self, table: str):
        return await self._run(self._get_headers, table)

    async def create_table(self, table: str, headers: List[str]):
        await self._run(self._create_table, table, headers)

    async def add_column(self, table: str, column: str, position: int, default: str):
        await self._run(self._add_column, table, column, position, default)

    async def get_rows(self, table: str) -> List[Row]:
        return await self._run(self._get_rows, table)

    async def append_rows(self, table: str, records: List[Dict[str, str]]):
        if records:
            await self._run(self._append_rows, table, records)

    async def update_row(self, table: str, row_id, record: Dict[str, str]):
        await self._run(self._update_row, table, row_id, record)

    async def delete_row(self, table: str, row_id):
        await self._run(self._delete_row, table, row_id)
