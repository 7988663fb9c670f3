"""
Durable single-slot store for the OAuth token (access token, refresh token, expiry).
Loaded at startup, replaced by the login callback and the background refresher.
The token file is JSON: access_token, token_type, refresh_token, expiry (RFC 3339).
"""
import json
import logging
import os
import re
import tempfile
import threading
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path

from sheet_config.errors import CredentialError

logger = logging.getLogger(__name__)

# fromisoformat on 3.10 only takes 3 or 6 fraction digits; Go writes up to 9
_FRACTION_RE = re.compile(r"\.([0-9]+)")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _normalize_rfc3339(value: str) -> str:
    value = value.replace("Z", "+00:00")
    return _FRACTION_RE.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), value, count=1)


@dataclass(frozen=True)
class Token:
    access_token: str
    refresh_token: str
    expiry: datetime
    token_type: str = "Bearer"

    def remaining(self, now: datetime | None = None) -> timedelta:
        return self.expiry - (now or utcnow())

    def expired(self, now: datetime | None = None) -> bool:
        return self.remaining(now) <= timedelta(0)

    def to_json(self) -> dict:
        data = asdict(self)
        data["expiry"] = self.expiry.isoformat()
        return data

    @classmethod
    def from_json(cls, data: dict) -> "Token":
        """Parse the stored JSON object. Raises ValueError/KeyError/TypeError on bad shape."""
        expiry = datetime.fromisoformat(_normalize_rfc3339(data["expiry"]))
        if expiry.tzinfo is None:
            expiry = expiry.replace(tzinfo=timezone.utc)
        access_token = data["access_token"]
        refresh_token = data.get("refresh_token") or ""
        if not isinstance(access_token, str) or not isinstance(refresh_token, str):
            raise TypeError("access_token and refresh_token must be strings")
        return cls(
            access_token=access_token,
            refresh_token=refresh_token,
            expiry=expiry,
            token_type=data.get("token_type") or "Bearer",
        )


class CredentialStore:
    """
    Holds the latest token in memory and mirrors it to a file.
    Token objects are immutable, so readers only ever see a whole token.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._token: Token | None = None
        self._lock = threading.Lock()

    def load(self) -> Token | None:
        """
        Read the token file. A missing file leaves the store empty (not logged in yet).
        Raises CredentialError when the file exists but cannot be read or parsed.
        """
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.warning("No token file at %s; log in via /login", self.path)
            return None
        except OSError as e:
            raise CredentialError(f"Unable to read token file {self.path}: {e}") from e
        try:
            token = Token.from_json(json.loads(raw))
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise CredentialError(f"Unable to parse token file {self.path}: {e}") from e
        with self._lock:
            self._token = token
        logger.info("Loaded token from %s (expires %s)", self.path, token.expiry.isoformat())
        return token

    def current(self) -> Token:
        """Latest known token. Never touches the network."""
        with self._lock:
            token = self._token
        if token is None:
            raise CredentialError("No token available; log in first")
        return token

    def replace(self, token: Token) -> None:
        """
        Persist the token, then make it current.
        On a write failure the previous token stays current and the previous file is untouched.
        """
        with self._lock:
            try:
                self._write(token)
            except OSError as e:
                raise CredentialError(f"Unable to save token to {self.path}: {e}") from e
            self._token = token

    def _write(self, token: Token) -> None:
        # mkstemp creates the file with mode 0600
        fd, tmp = tempfile.mkstemp(prefix=".token-", dir=self.path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(token.to_json(), f)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, self.path)
        except BaseException:
            try:
                os.unlink(tmp)
            except FileNotFoundError:
                pass
            raise
