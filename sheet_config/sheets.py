"""
Google Sheets API v4 reader. One GET per fetch, no retries.
Each namespace is a sheet (tab) whose columns A:B hold key/value pairs.
"""
import logging
from typing import NamedTuple
from urllib.parse import quote

import httpx

from sheet_config.errors import AuthError, MalformedResponseError, TransportError
from sheet_config.token_store import Token

logger = logging.getLogger(__name__)


class RawRow(NamedTuple):
    key: str
    value: str | None


class SheetsFetcher:
    def __init__(self, spreadsheet_id: str, *, base_url: str, timeout: float = 10.0):
        self.spreadsheet_id = spreadsheet_id
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def values_url(self, namespace: str) -> str:
        range_name = quote(f"{namespace}!A:B", safe="")
        return f"{self.base_url}/spreadsheets/{quote(self.spreadsheet_id, safe='')}/values/{range_name}"

    def fetch(self, namespace: str, token: Token) -> list[RawRow]:
        """Rows of the namespace in stored order. Raises AuthError, TransportError or MalformedResponseError."""
        try:
            r = httpx.get(
                self.values_url(namespace),
                headers={
                    "Authorization": f"{token.token_type} {token.access_token}",
                    "Accept": "application/json",
                },
                timeout=self.timeout,
            )
        except httpx.HTTPError as e:
            raise TransportError(f"Unable to retrieve data from sheet {namespace}: {e}") from e

        if r.status_code in (401, 403):
            raise AuthError(f"Sheets API rejected the access token ({r.status_code})")
        if r.status_code != 200:
            raise TransportError(f"Sheets API returned {r.status_code} for sheet {namespace}: {_error_message(r)}")

        try:
            body = r.json()
        except ValueError as e:
            raise MalformedResponseError(f"Sheets API response is not JSON: {e}") from e
        if not isinstance(body, dict):
            raise MalformedResponseError("Sheets API response is not a JSON object")
        # An empty sheet comes back without "values"
        values = body.get("values", [])
        if not isinstance(values, list):
            raise MalformedResponseError("'values' is not a list")

        rows = []
        for index, row in enumerate(values):
            if not isinstance(row, list):
                raise MalformedResponseError(f"row {index} is not a list")
            if not row:
                continue
            key = row[0]
            value = row[1] if len(row) > 1 else None
            if not isinstance(key, str):
                raise MalformedResponseError(f"row {index}: key cell is not a string")
            if value is not None and not isinstance(value, str):
                raise MalformedResponseError(f"row {index}: value cell is not a string")
            rows.append(RawRow(key, value))
        logger.debug("Fetched %d row(s) from sheet %s", len(rows), namespace)
        return rows


def _error_message(r) -> str:
    try:
        err = r.json()
    except ValueError:
        return r.text[:200] if r.text else "(no body)"
    if isinstance(err, dict) and isinstance(err.get("error"), dict):
        return str(err["error"].get("message", err["error"]))
    return str(err)[:200]
