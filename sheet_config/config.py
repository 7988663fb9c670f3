"""
Config server settings. Every value can be overridden from the environment.
No secrets in this file; client credentials live in CREDENTIALS_FILE.
"""
import os


def _flag(name: str, default: str) -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes", "on")


# Spreadsheet holding one sheet (tab) per namespace, key in column A, value in column B
SPREADSHEET_ID = os.environ.get("SHEET_CONFIG_SPREADSHEET_ID", "PUT-YOUR-SPREADSHEET-ID-HERE")

# OAuth client secret file downloaded from the Google Cloud console ("web" or "installed" client)
CREDENTIALS_FILE = os.environ.get("SHEET_CONFIG_CREDENTIALS_FILE", "credentials.json")

# Where the current access/refresh token is persisted
TOKEN_FILE = os.environ.get("SHEET_CONFIG_TOKEN_FILE", "token.json")

# Background renewal: check every interval, renew when less than interval + buffer remains
TOKEN_REFRESH_INTERVAL = int(os.environ.get("SHEET_CONFIG_TOKEN_REFRESH_INTERVAL", "1800"))
TOKEN_REFRESH_BUFFER = int(os.environ.get("SHEET_CONFIG_TOKEN_REFRESH_BUFFER", "300"))
TOKEN_REFRESH_INITIAL_DELAY = int(os.environ.get("SHEET_CONFIG_TOKEN_REFRESH_INITIAL_DELAY", "60"))

# Per-namespace snapshot cache. Disabled means every request fetches the sheet.
CACHE_ENABLED = _flag("SHEET_CONFIG_CACHE_ENABLED", "false")
CACHE_TTL = int(os.environ.get("SHEET_CONFIG_CACHE_TTL", "300"))

# Google Sheets API v4
SHEETS_API_URL = os.environ.get("SHEET_CONFIG_SHEETS_API_URL", "https://sheets.googleapis.com/v4").rstrip("/")

# Timeout (seconds) for every outbound call: sheet fetch, token refresh, code exchange
HTTP_TIMEOUT = float(os.environ.get("SHEET_CONFIG_HTTP_TIMEOUT", "10"))

# Login flow; the redirect URI must be registered for the OAuth client
REDIRECT_URI = os.environ.get("SHEET_CONFIG_REDIRECT_URI", "http://127.0.0.1:4040/callback")
SCOPE = os.environ.get("SHEET_CONFIG_SCOPE", "https://www.googleapis.com/auth/spreadsheets.readonly")

HOST = os.environ.get("SHEET_CONFIG_HOST", "127.0.0.1")
PORT = int(os.environ.get("SHEET_CONFIG_PORT", "4040"))
LOG_LEVEL = os.environ.get("SHEET_CONFIG_LOG_LEVEL", "INFO").upper()
