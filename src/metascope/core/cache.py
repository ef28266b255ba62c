"""Process-wide metadata cache.

Entries are keyed by ``(environment id, query signature)``. Reads never
block: an unknown key is marked pending and a fetch task is scheduled on the
running event loop. Switching environment clears every entry in one step;
completions that arrive for a superseded environment are dropped.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Coroutine, Optional

from metascope.client.queries import Query
from metascope.errors import MetascopeError
from metascope.models import Environment


logger = logging.getLogger(__name__)

Fetcher = Callable[[Environment, Query], Awaitable[Any]]
Spawner = Callable[[Coroutine[Any, Any, None]], Any]
Listener = Callable[["CacheKey", "CacheEntry"], None]
CacheKey = tuple[int, tuple]


class CacheState(str, Enum):
    NOT_REQUESTED = "not_requested"
    PENDING = "pending"
    READY = "ready"
    FAILED = "failed"


@dataclass(frozen=True)
class CacheEntry:
    """Immutable snapshot of one cache slot."""

    state: CacheState
    payload: Any = None
    error: Optional[MetascopeError] = None

    @property
    def is_pending(self) -> bool:
        return self.state == CacheState.PENDING

    @property
    def is_ready(self) -> bool:
        return self.state == CacheState.READY

    @property
    def is_failed(self) -> bool:
        return self.state == CacheState.FAILED


NOT_REQUESTED = CacheEntry(CacheState.NOT_REQUESTED)
PENDING = CacheEntry(CacheState.PENDING)


def _spawn_on_running_loop(coro: Coroutine[Any, Any, None]) -> asyncio.Task:
    return asyncio.get_running_loop().create_task(coro)


class MetadataCache:
    """Single-flight, environment-scoped store of fetched metadata."""

    def __init__(
        self,
        fetcher: Fetcher,
        environment: Optional[Environment] = None,
        spawn: Optional[Spawner] = None,
    ):
        """Initialize the cache.

        Args:
            fetcher: Coroutine that performs the remote call, normally
                ``DataverseClient.fetch``.
            environment: The initially active environment.
            spawn: Schedules a completion coroutine. Defaults to a task on
                the running loop.
        """
        self._fetcher = fetcher
        self._spawn = spawn or _spawn_on_running_loop
        self._environment = environment
        self._entries: dict[CacheKey, CacheEntry] = {}
        self._derived: dict[tuple[CacheKey, str], Any] = {}
        self._listeners: list[Listener] = []
        self._tasks: set[Any] = set()
        self.fetch_count = 0

    @property
    def environment(self) -> Optional[Environment]:
        return self._environment

    def __len__(self) -> int:
        return len(self._entries)

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    @staticmethod
    def key(env: Environment, query: Query) -> CacheKey:
        return (env.id, query.signature)

    def _is_current(self, env: Environment) -> bool:
        return self._environment is not None and self._environment.id == env.id

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def peek(self, env: Environment, query: Query) -> CacheEntry:
        """Current state without triggering a fetch."""
        if not self._is_current(env):
            return NOT_REQUESTED
        return self._entries.get(self.key(env, query), NOT_REQUESTED)

    def get_or_fetch(self, env: Environment, query: Query) -> CacheEntry:
        """Return the entry for *query*, scheduling a fetch if it is unknown.

        Callers for a key that is already pending get the same pending
        snapshot and no second fetch is issued. Requests for an environment
        that is no longer active are answered with ``NOT_REQUESTED``.
        """
        if not self._is_current(env):
            return NOT_REQUESTED
        key = self.key(env, query)
        entry = self._entries.get(key)
        if entry is not None:
            return entry
        return self._start(env, query, key)

    def retry(self, env: Environment, query: Query) -> CacheEntry:
        """Re-issue a failed fetch. Any other state is returned unchanged."""
        if not self._is_current(env):
            return NOT_REQUESTED
        key = self.key(env, query)
        entry = self._entries.get(key)
        if entry is None or entry.is_failed:
            return self._start(env, query, key)
        return entry

    def derive(self, env: Environment, query: Query, name: str, fn: Callable[[Any], Any]) -> Any:
        """Memoize ``fn(payload)`` next to a ready entry.

        Returns None while the entry is not ready. The memo is dropped
        together with the entry it came from.
        """
        entry = self.peek(env, query)
        if not entry.is_ready:
            return None
        slot = (self.key(env, query), name)
        if slot not in self._derived:
            self._derived[slot] = fn(entry.payload)
        return self._derived[slot]

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def switch_environment(self, env: Optional[Environment]) -> None:
        """Make *env* current and drop every entry of the previous one."""
        previous = self._environment
        self._environment = env
        self._entries.clear()
        self._derived.clear()
        logger.info(
            "Switched environment %s -> %s",
            previous.url if previous else None,
            env.url if env else None,
        )

    def _start(self, env: Environment, query: Query, key: CacheKey) -> CacheEntry:
        self._entries[key] = PENDING
        self.fetch_count += 1
        logger.debug("Fetching %s", query.describe())
        task = self._spawn(self._complete(env, query, key))
        # Keep plain asyncio tasks referenced until they finish
        if isinstance(task, asyncio.Future):
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        return PENDING

    async def _complete(self, env: Environment, query: Query, key: CacheKey) -> None:
        try:
            payload = await self._fetcher(env, query)
            entry = CacheEntry(CacheState.READY, payload=payload)
        except MetascopeError as e:
            logger.info("Fetch of %s failed: %s", query.describe(), e.describe())
            entry = CacheEntry(CacheState.FAILED, error=e)
        except Exception as e:
            logger.exception("Unexpected error fetching %s", query.describe())
            entry = CacheEntry(CacheState.FAILED, error=MetascopeError(str(e) or type(e).__name__))

        if not self._is_current(env):
            logger.debug("Dropping stale completion of %s for %s", query.describe(), env.url)
            return
        if self._entries.get(key) is not PENDING:
            return
        self._entries[key] = entry
        for slot in [s for s in self._derived if s[0] == key]:
            del self._derived[slot]
        for listener in list(self._listeners):
            listener(key, entry)
