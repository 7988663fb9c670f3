"""Tests for the HTTP layer: sheet JSON, single keys, metrics, error mapping, login flow."""
from datetime import datetime, timedelta, timezone
from unittest.mock import patch
from urllib.parse import parse_qs, urlparse

import httpx
import pytest
from fastapi.testclient import TestClient

from sheet_config.cache import ConfigCache
from sheet_config.client_secrets import ClientSecrets
from sheet_config.errors import AuthError, CredentialError, TransportError
from sheet_config.flow_store import store_flow
from sheet_config.main import app, get_cache, get_store
from sheet_config.sheets import RawRow
from sheet_config.token_store import CredentialStore, Token

SECRETS = ClientSecrets(
    client_id="cid",
    client_secret="secret",
    auth_uri="https://accounts.example/o/oauth2/auth",
    token_uri="https://accounts.example/token",
)

ROWS = [
    RawRow("feature_x", "TRUE"),
    RawRow("workers", "8"),
    RawRow("ratio", "0.5"),
    RawRow("name", "checkout"),
    RawRow("unset", "null"),
]

client = TestClient(app)


class TableFetcher:
    def __init__(self, tables):
        self.tables = tables

    def fetch(self, namespace, token):
        result = self.tables[namespace]
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture
def store(tmp_path):
    s = CredentialStore(tmp_path / "token.json")
    s.replace(Token("at", "rt", datetime.now(timezone.utc) + timedelta(hours=1)))
    return s


@pytest.fixture
def use_tables(store):
    def _install(tables):
        cache = ConfigCache(store, TableFetcher(tables), ttl=300)
        app.dependency_overrides[get_cache] = lambda: cache
        app.dependency_overrides[get_store] = lambda: store
        return cache

    yield _install
    app.dependency_overrides.clear()


def test_health():
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json().get("service") == "sheet_config"


def test_home():
    r = client.get("/")
    assert r.status_code == 200
    assert r.text == "It's working!"


def test_sheet_returns_typed_json(use_tables):
    use_tables({"prod": ROWS})
    r = client.get("/prod")
    assert r.status_code == 200
    assert r.json() == {"feature_x": True, "workers": 8, "ratio": 0.5, "name": "checkout", "unset": None}


def test_sheet_trailing_slash(use_tables):
    use_tables({"prod": ROWS})
    r = client.get("/prod/")
    assert r.status_code == 200
    assert r.json()["workers"] == 8


@pytest.mark.parametrize(
    "key,text",
    [("workers", "8"), ("feature_x", "true"), ("ratio", "0.5"), ("name", "checkout"), ("unset", "null")],
)
def test_single_key_as_plain_text(use_tables, key, text):
    use_tables({"prod": ROWS})
    r = client.get("/prod", params={"key": key})
    assert r.status_code == 200
    assert r.text == text


def test_missing_key_is_404(use_tables):
    use_tables({"prod": ROWS})
    r = client.get("/prod", params={"key": "nope"})
    assert r.status_code == 404
    assert r.json()["error"] == "key_not_found"


def test_query_without_key_is_400(use_tables):
    use_tables({"prod": ROWS})
    r = client.get("/prod", params={"other": "x"})
    assert r.status_code == 400


@pytest.mark.parametrize(
    "error,status,code",
    [
        (TransportError("down"), 502, "upstream_unavailable"),
        (AuthError("rejected"), 502, "upstream_auth_failed"),
        (CredentialError("no token"), 503, "credentials_unavailable"),
    ],
)
def test_fetch_errors_map_to_server_errors(use_tables, error, status, code):
    use_tables({"prod": error})
    r = client.get("/prod")
    assert r.status_code == status
    assert r.json()["error"] == code


def test_metrics(use_tables):
    use_tables({"prod": ROWS})
    r = client.get("/prod/metrics")
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/plain")
    assert r.text.splitlines() == [
        'remote_config{key="feature_x"} 1',
        'remote_config{key="workers"} 8',
        'remote_config{key="ratio"} 0.5',
    ]


def test_metrics_fetch_error(use_tables):
    use_tables({"prod": TransportError("down")})
    r = client.get("/prod/metrics")
    assert r.status_code == 502


# --- login flow ---


def test_login_redirects_to_consent_page():
    with patch("sheet_config.main.load_secrets", return_value=SECRETS):
        r = client.get("/login", follow_redirects=False)
    assert r.status_code == 302
    location = urlparse(r.headers["location"])
    assert location.netloc == "accounts.example"
    params = parse_qs(location.query)
    assert params["client_id"] == ["cid"]
    assert params["access_type"] == ["offline"]
    assert params["code_challenge_method"] == ["S256"]
    assert "state" in params


def test_login_without_client_secrets():
    with patch("sheet_config.main.load_secrets", side_effect=CredentialError("Unable to read client secret file")):
        r = client.get("/login", follow_redirects=False)
    assert r.status_code == 400
    assert "client secret" in r.text


def test_callback_missing_state():
    r = client.get("/callback")
    assert r.status_code == 400
    assert "state" in r.text.lower()


def test_callback_unknown_state():
    r = client.get("/callback", params={"state": "unknown-state", "code": "somecode"})
    assert r.status_code == 400
    assert "Invalid" in r.text


def test_callback_error_from_provider():
    store_flow("state-for-error", code_verifier="v")
    r = client.get("/callback", params={"state": "state-for-error", "error": "access_denied"})
    assert r.status_code == 400
    assert "access_denied" in r.text


def test_callback_valid_state_and_code_stores_token(tmp_path):
    store = CredentialStore(tmp_path / "token.json")
    app.dependency_overrides[get_store] = lambda: store
    store_flow("valid-state-123", code_verifier="verifier")

    class MockPost:
        status_code = 200
        headers = {"content-type": "application/json"}

        def json(self):
            return {
                "access_token": "ya29.at",
                "expires_in": 3599,
                "refresh_token": "1//rt",
                "scope": "https://www.googleapis.com/auth/spreadsheets.readonly",
                "token_type": "Bearer",
            }

    try:
        with patch("sheet_config.main.load_secrets", return_value=SECRETS), patch(
            "sheet_config.main.httpx.post", return_value=MockPost()
        ) as post:
            r = client.get("/callback", params={"state": "valid-state-123", "code": "auth-code-xyz"})
    finally:
        app.dependency_overrides.clear()

    assert r.status_code == 200
    assert "You are logged in!" in r.text
    data = post.call_args.kwargs["data"]
    assert data["grant_type"] == "authorization_code"
    assert data["code"] == "auth-code-xyz"
    assert data["code_verifier"] == "verifier"
    token = store.current()
    assert token.access_token == "ya29.at"
    assert token.refresh_token == "1//rt"
    assert (tmp_path / "token.json").exists()


def test_callback_exchange_rejected(tmp_path):
    store_flow("state-rejected", code_verifier="v")

    class MockPost:
        status_code = 400
        headers = {"content-type": "application/json"}

        def json(self):
            return {"error": "invalid_grant", "error_description": "Bad Request"}

    with patch("sheet_config.main.load_secrets", return_value=SECRETS), patch(
        "sheet_config.main.httpx.post", return_value=MockPost()
    ):
        r = client.get("/callback", params={"state": "state-rejected", "code": "c"})
    assert r.status_code == 400
    assert "Bad Request" in r.text


def test_callback_exchange_network_error():
    store_flow("state-network", code_verifier="v")
    with patch("sheet_config.main.load_secrets", return_value=SECRETS), patch(
        "sheet_config.main.httpx.post", side_effect=httpx.ConnectError("connection refused")
    ):
        r = client.get("/callback", params={"state": "state-network", "code": "c"})
    assert r.status_code == 502


def test_out_of_range_number_keeps_sheet_servable(use_tables):
    use_tables({"prod": [RawRow("big", "1e999"), RawRow("digits", "9" * 400), RawRow("workers", "8")]})
    r = client.get("/prod")
    assert r.status_code == 200
    assert r.json() == {"big": "1e999", "digits": "9" * 400, "workers": 8}

    r = client.get("/prod/metrics")
    assert r.status_code == 200
    assert r.text == 'remote_config{key="workers"} 8\n'
