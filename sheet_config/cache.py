"""
Per-namespace snapshot cache.

get() serves the stored snapshot while it is younger than the TTL. Otherwise it fetches the
sheet, coerces the rows and installs a new snapshot in place of the old one. The lock only
guards the entry map: the network fetch runs outside it, so a slow sheet never blocks readers
of other namespaces. Two concurrent stale reads may both fetch; the last one to install wins.

When a refetch fails and an older snapshot exists, the older snapshot is served. Only a
namespace that was never fetched successfully surfaces the error.
"""
import logging
import threading
import time
from dataclasses import dataclass
from types import MappingProxyType
from typing import Callable, Mapping, Protocol, Sequence

from sheet_config.coerce import ConfigValue, coerce_rows
from sheet_config.errors import CredentialError, FetchError, KeyNotFoundError
from sheet_config.sheets import RawRow
from sheet_config.token_store import CredentialStore, Token

logger = logging.getLogger(__name__)


class Fetcher(Protocol):
    def fetch(self, namespace: str, token: Token) -> Sequence[RawRow]: ...


@dataclass(frozen=True)
class ConfigSnapshot:
    namespace: str
    values: Mapping[str, ConfigValue]
    fetched_at: float

    def to_dict(self) -> dict:
        return {key: value.to_python() for key, value in self.values.items()}


class ConfigCache:
    def __init__(
        self,
        store: CredentialStore,
        fetcher: Fetcher,
        *,
        ttl: float,
        enabled: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.fetcher = fetcher
        self.ttl = ttl
        self.enabled = enabled
        self.clock = clock
        self._entries: dict[str, ConfigSnapshot] = {}
        self._lock = threading.Lock()

    def _is_stale(self, snapshot: ConfigSnapshot | None, now: float) -> bool:
        if not self.enabled or snapshot is None:
            return True
        return now - snapshot.fetched_at >= self.ttl

    def get(self, namespace: str) -> ConfigSnapshot:
        """Snapshot for the namespace. Raises FetchError only if no snapshot was ever fetched."""
        with self._lock:
            snapshot = self._entries.get(namespace)
        if not self._is_stale(snapshot, self.clock()):
            return snapshot

        try:
            fresh = self._fetch(namespace)
        except FetchError as e:
            if snapshot is None:
                raise
            logger.warning("Serving stale config for sheet %s: %s", namespace, e)
            return snapshot

        with self._lock:
            self._entries[namespace] = fresh
        return fresh

    def get_key(self, namespace: str, key: str) -> ConfigValue:
        values = self.get(namespace).values
        if key not in values:
            raise KeyNotFoundError(namespace, key)
        return values[key]

    def _fetch(self, namespace: str) -> ConfigSnapshot:
        token = self.store.current()
        if token.expired():
            raise CredentialError("Access token expired; waiting for renewal")
        rows = self.fetcher.fetch(namespace, token)
        values = coerce_rows(rows)
        logger.info("Fetched %d key(s) for sheet %s", len(values), namespace)
        return ConfigSnapshot(
            namespace=namespace,
            values=MappingProxyType(values),
            fetched_at=self.clock(),
        )
