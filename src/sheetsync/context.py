"""Shared, explicitly passed runtime state.

The quota window, the circuit breaker and the artifact cache are shared by
every :class:`~sheetsync.batch.BatchCompiler` and
:class:`~sheetsync.diff.DiffEngine` of a process.  Rather than module
globals, they live on a :class:`SyncContext` that is built once and handed
to each component at construction.  Tests build their own context and get
full isolation.

:class:`LazyComponents` defers construction of expensive components until
first use.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from sheetsync.cache import ArtifactCache
from sheetsync.config import SheetSyncConfig
from sheetsync.observability.events import LoggingEventSink
from sheetsync.observability.metrics import NoopMetricsHook
from sheetsync.remote.breaker import CircuitBreaker
from sheetsync.remote.guard import QuotaGuard
from sheetsync.remote.quota import QuotaWindow
from sheetsync.remote.retries import RetryLoop, RetryPolicy


@dataclass
class SyncContext:
    """Process-wide state shared by compilers and engines.

    Attributes
    ----------
    config:
        The configuration the context was built from.
    guard:
        Quota window, circuit breaker and per-attempt timeout.
    cache:
        The shared artifact cache.
    events:
        Event sink every component reports to.
    metrics:
        Metrics hook every component reports to.
    retry_policy:
        Attempt ceiling and backoff parameters.
    sleep:
        Coroutine used for backoff waits.
    """

    config: SheetSyncConfig
    guard: QuotaGuard
    cache: ArtifactCache
    events: Any
    metrics: Any
    retry_policy: RetryPolicy
    sleep: Callable[[float], Awaitable[Any]] = field(default=asyncio.sleep)

    @classmethod
    def from_config(
        cls,
        config: SheetSyncConfig,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> SyncContext:
        """Build the shared state described by *config*.

        Parameters
        ----------
        clock:
            Monotonic clock for the quota window, breaker and cache.
        sleep:
            Coroutine for quota waits and backoff.  Tests pass a fake that
            advances *clock* instead of sleeping.
        """
        events = config.events if config.events is not None else LoggingEventSink()
        metrics = config.metrics if config.metrics is not None else NoopMetricsHook()
        window = QuotaWindow(
            config.quota_requests_per_window,
            config.quota_window_seconds,
            clock=clock,
            sleep=sleep,
            events=events,
            metrics=metrics,
        )
        breaker = CircuitBreaker(
            config.breaker_failure_threshold,
            config.breaker_cooldown_seconds,
            clock=clock,
            events=events,
        )
        guard = QuotaGuard(
            window,
            breaker,
            attempt_timeout=config.attempt_timeout_seconds,
            metrics=metrics,
        )
        cache = ArtifactCache(
            config.cache_max_bytes,
            config.cache_ttl_seconds,
            clock=clock,
            events=events,
            metrics=metrics,
        )
        return cls(
            config=config,
            guard=guard,
            cache=cache,
            events=events,
            metrics=metrics,
            retry_policy=RetryPolicy.from_config(config),
            sleep=sleep,
        )

    def retry_loop(self) -> RetryLoop[Any]:
        """Fresh retry driver for one logical remote operation."""
        return RetryLoop(
            self.guard,
            self.retry_policy,
            sleep=self.sleep,
            events=self.events,
            metrics=self.metrics,
        )


class LazyComponents:
    """Registry of named factories, each constructed on first access.

    Examples
    --------
    >>> lazy = LazyComponents()
    >>> lazy.register("answer", lambda: 42)
    >>> lazy.is_loaded("answer")
    False
    >>> lazy.get("answer")
    42
    >>> lazy.is_loaded("answer")
    True
    """

    def __init__(self) -> None:
        self._factories: dict[str, Callable[[], Any]] = {}
        self._instances: dict[str, Any] = {}

    def register(self, name: str, factory: Callable[[], Any]) -> None:
        """Register *factory* under *name*.

        Raises
        ------
        ValueError
            If *name* was already constructed.
        """
        if name in self._instances:
            raise ValueError(f"component {name!r} is already loaded")
        self._factories[name] = factory

    def get(self, name: str) -> Any:
        """Return the component, constructing it on first access.

        Raises
        ------
        KeyError
            If no factory is registered under *name*.
        """
        try:
            return self._instances[name]
        except KeyError:
            pass
        try:
            factory = self._factories[name]
        except KeyError:
            raise KeyError(f"no component registered under {name!r}") from None
        instance = factory()
        self._instances[name] = instance
        return instance

    def is_loaded(self, name: str) -> bool:
        return name in self._instances

    def __contains__(self, name: object) -> bool:
        return name in self._factories

    def loaded(self) -> dict[str, Any]:
        """Components constructed so far, by name."""
        return dict(self._instances)
