"""
Background renewal of the stored access token.
Every interval the refresher checks the stored token; once less than the safety margin
(interval + buffer) remains, it runs a refresh_token grant and replaces the stored token.
Failures are logged and retried on the next tick.
"""
import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable

import httpx

from sheet_config.client_secrets import ClientSecrets
from sheet_config.errors import CredentialError
from sheet_config.token_store import CredentialStore, Token, utcnow

logger = logging.getLogger(__name__)


class TokenRefresher:
    def __init__(
        self,
        store: CredentialStore,
        load_secrets: Callable[[], ClientSecrets],
        *,
        interval: float,
        buffer: float,
        initial_delay: float = 0,
        timeout: float = 10.0,
        clock: Callable[[], datetime] = utcnow,
    ):
        if buffer <= 0:
            # A missed tick must not let the token expire before the next attempt
            raise ValueError("safety margin must exceed the refresh interval (buffer > 0)")
        self.store = store
        self.load_secrets = load_secrets
        self.interval = interval
        self.safety_margin = timedelta(seconds=interval + buffer)
        self.initial_delay = initial_delay
        self.timeout = timeout
        self.clock = clock
        self._task: asyncio.Task | None = None

    def needs_renewal(self, token: Token, now: datetime | None = None) -> bool:
        """True when the token is inside the safety margin (Renewing), False when Idle."""
        return token.remaining(now or self.clock()) < self.safety_margin

    def tick(self) -> bool:
        """One state check. Returns True when the token was renewed."""
        try:
            token = self.store.current()
        except CredentialError as e:
            logger.warning("Skipping token renewal: %s", e)
            return False

        now = self.clock()
        if not self.needs_renewal(token, now):
            logger.info(
                "No need to renew access token; expires in %s, next check in %ss",
                token.remaining(now),
                self.interval,
            )
            return False

        if not token.refresh_token:
            logger.error("Cannot renew access token: no refresh token stored; log in again")
            return False

        try:
            secrets = self.load_secrets()
            renewed = self._refresh(secrets, token)
            self.store.replace(renewed)
        except (CredentialError, httpx.HTTPError, ValueError) as e:
            logger.error("Error while renewing token: %s", e)
            return False

        logger.info("Access token refreshed; expires %s", renewed.expiry.isoformat())
        return True

    def _refresh(self, secrets: ClientSecrets, token: Token) -> Token:
        """Run the refresh_token grant. Raises httpx.HTTPError or ValueError on failure."""
        r = httpx.post(
            secrets.token_uri,
            data={
                "grant_type": "refresh_token",
                "refresh_token": token.refresh_token,
                "client_id": secrets.client_id,
                "client_secret": secrets.client_secret,
            },
            headers={"Accept": "application/json"},
            timeout=self.timeout,
        )
        try:
            data = r.json()
        except ValueError:
            data = None
        if r.status_code != 200:
            err = data if isinstance(data, dict) else {}
            desc = err.get("error_description") or err.get("error") or f"HTTP {r.status_code}"
            raise ValueError(f"refresh grant rejected: {desc}")
        if not isinstance(data, dict):
            raise ValueError("refresh grant response is not a JSON object")
        access_token = data.get("access_token")
        expires_in = data.get("expires_in")
        if not isinstance(access_token, str) or not access_token:
            raise ValueError("refresh grant response has no access_token")
        if isinstance(expires_in, bool) or not isinstance(expires_in, (int, float)):
            raise ValueError("refresh grant response has no numeric expires_in")
        return Token(
            access_token=access_token,
            # The provider may rotate the refresh token; keep the old one otherwise
            refresh_token=data.get("refresh_token") or token.refresh_token,
            expiry=self.clock() + timedelta(seconds=expires_in),
            token_type=data.get("token_type") or token.token_type,
        )

    async def run(self) -> None:
        """Tick forever: initial delay, then every interval. Blocking work runs in a thread."""
        await asyncio.sleep(self.initial_delay)
        while True:
            try:
                await asyncio.to_thread(self.tick)
            except Exception:
                logger.exception("Unexpected error in token refresher")
            await asyncio.sleep(self.interval)

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run(), name="token-refresher")
        return self._task

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()
