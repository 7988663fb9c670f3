"""
OAuth client secrets as downloaded from the Google Cloud console.
The file holds a single "web" or "installed" object with client_id, client_secret, auth_uri, token_uri.
"""
import json
from dataclasses import dataclass
from pathlib import Path

from sheet_config.errors import CredentialError

GOOGLE_AUTH_URI = "https://accounts.google.com/o/oauth2/auth"
GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"


@dataclass(frozen=True)
class ClientSecrets:
    client_id: str
    client_secret: str
    auth_uri: str = GOOGLE_AUTH_URI
    token_uri: str = GOOGLE_TOKEN_URI


def parse_client_secrets(data: dict) -> ClientSecrets:
    section = None
    if isinstance(data, dict):
        section = data.get("web") or data.get("installed")
    if not isinstance(section, dict):
        raise CredentialError("Client secrets must contain a 'web' or 'installed' object")
    client_id = section.get("client_id")
    client_secret = section.get("client_secret")
    if not client_id or not client_secret:
        raise CredentialError("Client secrets are missing client_id or client_secret")
    return ClientSecrets(
        client_id=client_id,
        client_secret=client_secret,
        auth_uri=section.get("auth_uri") or GOOGLE_AUTH_URI,
        token_uri=section.get("token_uri") or GOOGLE_TOKEN_URI,
    )


def load_client_secrets(path: str | Path) -> ClientSecrets:
    """Read and parse the client secret file. Raises CredentialError on any failure."""
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except OSError as e:
        raise CredentialError(f"Unable to read client secret file: {e}") from e
    except ValueError as e:
        raise CredentialError(f"Unable to parse client secret file: {e}") from e
    return parse_client_secrets(data)
