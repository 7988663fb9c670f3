"""
Sheet config server.
GET /login and /callback run the Google authorization-code flow and store the token.
GET /{sheet} serves a sheet as typed JSON (or one value with ?key=), /{sheet}/metrics as
Prometheus text. Port 4040 by default.
"""
import html
import json
import logging
from contextlib import asynccontextmanager
from datetime import timedelta
from functools import partial

import httpx
from fastapi import Depends, FastAPI, Request
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse, RedirectResponse, Response

from sheet_config.cache import ConfigCache
from sheet_config.client_secrets import load_client_secrets
from sheet_config.coerce import ConfigValue, ValueKind
from sheet_config.config import (
    CACHE_ENABLED,
    CACHE_TTL,
    CREDENTIALS_FILE,
    HOST,
    HTTP_TIMEOUT,
    LOG_LEVEL,
    PORT,
    REDIRECT_URI,
    SCOPE,
    SHEETS_API_URL,
    SPREADSHEET_ID,
    TOKEN_FILE,
    TOKEN_REFRESH_BUFFER,
    TOKEN_REFRESH_INITIAL_DELAY,
    TOKEN_REFRESH_INTERVAL,
)
from sheet_config.errors import (
    AuthError,
    CredentialError,
    KeyNotFoundError,
    MalformedResponseError,
    SheetConfigError,
    TransportError,
)
from sheet_config.flow_store import get_flow, store_flow
from sheet_config.metrics import CONTENT_TYPE as METRICS_CONTENT_TYPE
from sheet_config.metrics import render_metrics
from sheet_config.pkce import build_authorize_url, generate_pkce, generate_state
from sheet_config.sheets import SheetsFetcher
from sheet_config.token_refresher import TokenRefresher
from sheet_config.token_store import CredentialStore, Token, utcnow

logger = logging.getLogger(__name__)

load_secrets = partial(load_client_secrets, CREDENTIALS_FILE)

credential_store = CredentialStore(TOKEN_FILE)
config_cache = ConfigCache(
    credential_store,
    SheetsFetcher(SPREADSHEET_ID, base_url=SHEETS_API_URL, timeout=HTTP_TIMEOUT),
    ttl=CACHE_TTL,
    enabled=CACHE_ENABLED,
)
token_refresher = TokenRefresher(
    credential_store,
    load_secrets,
    interval=TOKEN_REFRESH_INTERVAL,
    buffer=TOKEN_REFRESH_BUFFER,
    initial_delay=TOKEN_REFRESH_INITIAL_DELAY,
    timeout=HTTP_TIMEOUT,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Load the stored token and run the refresher for the lifetime of the app."""
    try:
        credential_store.load()
    except CredentialError as e:
        logger.error("Starting without a token: %s", e)
    token_refresher.start()
    try:
        yield
    finally:
        await token_refresher.stop()


app = FastAPI(title="Sheet Config", version="0.1.0", lifespan=lifespan)


def get_store() -> CredentialStore:
    return credential_store


def get_cache() -> ConfigCache:
    return config_cache


# error class -> (status, error code); first isinstance match wins
_ERROR_STATUS = (
    (KeyNotFoundError, 404, "key_not_found"),
    (CredentialError, 503, "credentials_unavailable"),
    (AuthError, 502, "upstream_auth_failed"),
    (MalformedResponseError, 502, "upstream_malformed_response"),
    (TransportError, 502, "upstream_unavailable"),
)


@app.exception_handler(SheetConfigError)
async def sheet_config_error(request: Request, exc: SheetConfigError):
    status_code, error = 500, "internal_error"
    for cls, code, name in _ERROR_STATUS:
        if isinstance(exc, cls):
            status_code, error = code, name
            break
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse({"error": error, "error_description": str(exc)}, status_code=status_code)


def _page(title: str, message: str, status_code: int = 200) -> HTMLResponse:
    return HTMLResponse(
        f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>{html.escape(title)}</title></head>
<body>
  <h1>{html.escape(title)}</h1>
  <p>{html.escape(message)}</p>
</body>
</html>""",
        status_code=status_code,
    )


def _plain_value(value: ConfigValue) -> str:
    """Strings as-is, everything else in JSON notation (true, null, 42, 3.14)."""
    if value.kind is ValueKind.STRING:
        return value.value
    return json.dumps(value.to_python())


@app.get("/health")
def health():
    """Health check endpoint."""
    return {"status": "ok", "service": "sheet_config"}


@app.get("/", response_class=PlainTextResponse)
def home():
    return "It's working!"


@app.get("/login")
def login():
    """Generate state and PKCE; redirect to the provider consent page."""
    try:
        secrets = load_secrets()
    except CredentialError as e:
        return _page("Login error", str(e), status_code=400)
    state = generate_state()
    code_verifier, code_challenge = generate_pkce()
    store_flow(state, code_verifier=code_verifier)
    url = build_authorize_url(
        auth_uri=secrets.auth_uri,
        client_id=secrets.client_id,
        redirect_uri=REDIRECT_URI,
        scope=SCOPE,
        state=state,
        code_challenge=code_challenge,
    )
    return RedirectResponse(url=url, status_code=302)


@app.get("/callback")
def callback(request: Request, store: CredentialStore = Depends(get_store)):
    """Validate state, exchange the authorization code, persist the token."""
    params = request.query_params
    error = params.get("error")
    state = params.get("state")
    code = params.get("code")

    if error:
        if state:
            get_flow(state)
        return _page("Login error", params.get("error_description") or error, status_code=400)
    if not state:
        return _page("Error", "Missing state parameter.", status_code=400)
    flow = get_flow(state)
    if not flow:
        return _page("Error", "Invalid or expired state. Please try logging in again.", status_code=400)
    if not code:
        return _page("Error", "Unable to read authorization code.", status_code=400)

    try:
        secrets = load_secrets()
    except CredentialError as e:
        return _page("Login error", str(e), status_code=400)

    try:
        r = httpx.post(
            secrets.token_uri,
            data={
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": REDIRECT_URI,
                "client_id": secrets.client_id,
                "client_secret": secrets.client_secret,
                "code_verifier": flow.code_verifier,
            },
            headers={"Accept": "application/json"},
            timeout=HTTP_TIMEOUT,
        )
    except httpx.HTTPError as e:
        logger.error("Token exchange failed: %s", e)
        return _page("Token exchange failed", str(e), status_code=502)

    try:
        data = r.json()
    except ValueError:
        data = {}
    if not isinstance(data, dict):
        data = {}
    if r.status_code != 200:
        desc = data.get("error_description") or data.get("error") or "Token exchange failed"
        return _page("Token exchange failed", str(desc), status_code=400)

    access_token = data.get("access_token")
    expires_in = data.get("expires_in")
    if not access_token or not isinstance(expires_in, (int, float)):
        return _page("Token exchange failed", "Token response is missing access_token or expires_in.", status_code=400)
    refresh_token = data.get("refresh_token") or ""
    if not refresh_token:
        logger.warning("Token response has no refresh_token; the access token cannot be renewed")

    token = Token(
        access_token=access_token,
        refresh_token=refresh_token,
        expiry=utcnow() + timedelta(seconds=expires_in),
        token_type=data.get("token_type") or "Bearer",
    )
    try:
        store.replace(token)
    except CredentialError as e:
        logger.error("Login succeeded but the token was not saved: %s", e)
        return _page("Login error", str(e), status_code=500)
    logger.info("Logged in; access token expires %s", token.expiry.isoformat())
    return _page("Logged in", "You are logged in!")


@app.get("/{sheet}/metrics")
def sheet_metrics(sheet: str, cache: ConfigCache = Depends(get_cache)):
    snapshot = cache.get(sheet)
    return Response(render_metrics(snapshot.values), media_type=METRICS_CONTENT_TYPE)


@app.get("/{sheet}")
@app.get("/{sheet}/")
def get_sheet(sheet: str, request: Request, cache: ConfigCache = Depends(get_cache)):
    """Whole sheet as JSON; with ?key=K only that value as plain text."""
    params = request.query_params
    if not params:
        return cache.get(sheet).to_dict()
    if "key" not in params:
        return JSONResponse(
            {"error": "invalid_request", "error_description": "key param is not in url"},
            status_code=400,
        )
    value = cache.get_key(sheet, params["key"])
    return PlainTextResponse(_plain_value(value))


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run(
        "sheet_config.main:app",
        host=HOST,
        port=PORT,
    )
