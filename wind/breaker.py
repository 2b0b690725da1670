"""Circuit-breaker rules per scope, and tracking of resources in a fused state.

A scope has up to three dot-separated parts, ``type.name.method``. The type is
``server``, ``client`` or ``mongo``. The name is an instance such as a
collection or a service. The method is the smallest unit that can be broken.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import IntEnum
from typing import Callable, Dict, List, Optional, Sequence, Union

from . import constants
from .context import Context

logger = logging.getLogger(__name__)

DEFAULT_SERVER_RETRY_TIMEOUT_MS = 10000
DEFAULT_SERVER_MIN_REQUEST_AMOUNT = 100
DEFAULT_SERVER_STAT_SLIDING_WINDOW_BUCKET_COUNT = 10
DEFAULT_SERVER_THRESHOLD = 0.7
DEFAULT_SERVER_STAT_INTERVAL_MS = 10000

DEFAULT_CLIENT_RETRY_TIMEOUT_MS = 10000
DEFAULT_CLIENT_MIN_REQUEST_AMOUNT = 100
DEFAULT_CLIENT_STAT_SLIDING_WINDOW_BUCKET_COUNT = 10
DEFAULT_CLIENT_THRESHOLD = 0.7
DEFAULT_CLIENT_STAT_INTERVAL_MS = 10000

DEFAULT_MONGO_RETRY_TIMEOUT_MS = 10000
DEFAULT_MONGO_MIN_REQUEST_AMOUNT = 20
DEFAULT_MONGO_STAT_SLIDING_WINDOW_BUCKET_COUNT = 10
DEFAULT_MONGO_MAX_ALLOWED_RT_MS = 99
DEFAULT_MONGO_THRESHOLD = 0.7
DEFAULT_MONGO_STAT_INTERVAL_MS = 10000
DEFAULT_MONGO_ERROR_COUNT_THRESHOLD = 50

TYPE_SERVER = "server"
TYPE_CLIENT = "client"
TYPE_MONGO = "mongo"

MONGO_MAX_TIME_LIMIT_ERR = "operation exceeded time limit"


class Strategy(IntEnum):
    """How a breaker decides to open."""

    SLOW_REQUEST_RATIO = 0
    ERROR_RATIO = 1
    ERROR_COUNT = 2


@dataclass
class BreakerRule:
    """A circuit-breaking rule for one resource."""

    resource: str
    strategy: Strategy
    retry_timeout_ms: int
    min_request_amount: int
    stat_interval_ms: int
    stat_sliding_window_bucket_count: int
    threshold: float
    max_allowed_rt_ms: int = 0


@dataclass(frozen=True)
class BreakerOverride:
    """Configured adjustments to the default rules; zero means keep the default."""

    max_allowed_rt_ms: int = 0
    retry_timeout_ms: int = 0
    min_request_amount: int = 0
    stat_interval_ms: int = 0
    err_ratio_threshold: float = 0
    err_count_threshold: float = 0
    slow_ratio_threshold: float = 0
    stat_sliding_window_bucket_count: int = 0

    def threshold_for(self, strategy: Strategy) -> float:
        return {
            Strategy.ERROR_RATIO: self.err_ratio_threshold,
            Strategy.ERROR_COUNT: self.err_count_threshold,
            Strategy.SLOW_REQUEST_RATIO: self.slow_ratio_threshold,
        }[strategy]


OverrideLookup = Callable[[str], Optional[BreakerOverride]]


def _find_override(parts: List[str], lookup: Optional[OverrideLookup]) -> Optional[BreakerOverride]:
    if lookup is None:
        return None
    for candidate in (".".join(parts), ".".join(parts[:2]), parts[0]):
        override = lookup(candidate)
        if override is not None:
            return override
    return None


def _default_rules(resource: str, kind: str) -> List[BreakerRule]:
    if kind == TYPE_SERVER:
        return [
            BreakerRule(
                resource=resource,
                strategy=Strategy.ERROR_RATIO,
                retry_timeout_ms=DEFAULT_SERVER_RETRY_TIMEOUT_MS,
                min_request_amount=DEFAULT_SERVER_MIN_REQUEST_AMOUNT,
                stat_interval_ms=DEFAULT_SERVER_STAT_INTERVAL_MS,
                stat_sliding_window_bucket_count=DEFAULT_SERVER_STAT_SLIDING_WINDOW_BUCKET_COUNT,
                threshold=DEFAULT_SERVER_THRESHOLD,
            )
        ]
    if kind == TYPE_CLIENT:
        return [
            BreakerRule(
                resource=resource,
                strategy=Strategy.ERROR_RATIO,
                retry_timeout_ms=DEFAULT_CLIENT_RETRY_TIMEOUT_MS,
                min_request_amount=DEFAULT_CLIENT_MIN_REQUEST_AMOUNT,
                stat_interval_ms=DEFAULT_CLIENT_STAT_INTERVAL_MS,
                stat_sliding_window_bucket_count=DEFAULT_CLIENT_STAT_SLIDING_WINDOW_BUCKET_COUNT,
                threshold=DEFAULT_CLIENT_THRESHOLD,
            )
        ]
    if kind == TYPE_MONGO:
        return [
            BreakerRule(
                resource=resource,
                strategy=Strategy.SLOW_REQUEST_RATIO,
                retry_timeout_ms=DEFAULT_MONGO_RETRY_TIMEOUT_MS,
                min_request_amount=DEFAULT_MONGO_MIN_REQUEST_AMOUNT,
                stat_interval_ms=DEFAULT_MONGO_STAT_INTERVAL_MS,
                stat_sliding_window_bucket_count=DEFAULT_MONGO_STAT_SLIDING_WINDOW_BUCKET_COUNT,
                threshold=DEFAULT_MONGO_THRESHOLD,
                max_allowed_rt_ms=DEFAULT_MONGO_MAX_ALLOWED_RT_MS,
            ),
            BreakerRule(
                resource=resource,
                strategy=Strategy.ERROR_COUNT,
                retry_timeout_ms=DEFAULT_MONGO_RETRY_TIMEOUT_MS,
                min_request_amount=DEFAULT_MONGO_MIN_REQUEST_AMOUNT,
                stat_interval_ms=DEFAULT_MONGO_STAT_INTERVAL_MS,
                stat_sliding_window_bucket_count=DEFAULT_MONGO_STAT_SLIDING_WINDOW_BUCKET_COUNT,
                threshold=DEFAULT_MONGO_ERROR_COUNT_THRESHOLD,
            ),
        ]
    raise ValueError(f"unknown breaker type: {kind!r}")


def _apply(rule: BreakerRule, override: BreakerOverride) -> None:
    if override.max_allowed_rt_ms:
        rule.max_allowed_rt_ms = override.max_allowed_rt_ms
    if override.retry_timeout_ms:
        rule.retry_timeout_ms = override.retry_timeout_ms
    if override.min_request_amount:
        rule.min_request_amount = override.min_request_amount
    if override.stat_interval_ms:
        rule.stat_interval_ms = override.stat_interval_ms
    threshold = override.threshold_for(rule.strategy)
    if threshold:
        rule.threshold = threshold
    if override.stat_sliding_window_bucket_count:
        rule.stat_sliding_window_bucket_count = override.stat_sliding_window_bucket_count


def get_rule_by_scope(
    scopes: Union[str, Sequence[str]],
    lookup: Optional[OverrideLookup] = None,
) -> List[BreakerRule]:
    """Build the rules for a scope, adjusted by the most specific configured override.

    ``lookup`` maps a scope string to an override or None; it is asked for the
    full scope, then its first two parts, then the type alone.
    """
    parts = scopes.split(".") if isinstance(scopes, str) else list(scopes)
    if not parts or not parts[0]:
        raise ValueError("empty breaker scope")
    resource = ".".join(parts)
    override = _find_override(parts, lookup)
    rules = _default_rules(resource, parts[0])
    if override is not None:
        for rule in rules:
            _apply(rule, override)
    return rules


def scope_from_context(ctx: Context) -> str:
    """The breaker scope stored in ctx; raises TypeError if there is none."""
    scope = ctx.value(constants.SENTINEL_BREAKER)
    if not isinstance(scope, str):
        raise TypeError("context carries no breaker scope")
    return scope


def server_scope(full_method: str) -> str:
    """The breaker scope of a served RPC method such as ``/pkg.Service/Method``."""
    parts = full_method.split(".")
    if len(parts) < 2:
        raise ValueError(f"malformed method name: {full_method!r}")
    return "server.grpc." + parts[1]


def client_scope(addr: str) -> str:
    """The breaker scope of a downstream address."""
    return "client.grpc." + addr.replace(".", "_")


class _FuseState(IntEnum):
    OPEN = 1
    HALF_OPEN = 2


class FuseRegistry:
    """Tracks which resources have an open or half-open breaker."""

    def __init__(self) -> None:
        self._states: Dict[str, _FuseState] = {}
        self._lock = threading.Lock()

    def on_closed(self, resource: str) -> None:
        logger.info("breaker closed: %s", resource)
        with self._lock:
            self._states.pop(resource, None)

    def on_open(self, resource: str) -> None:
        logger.error("breaker opened: %s", resource)
        with self._lock:
            self._states[resource] = _FuseState.OPEN

    def on_half_open(self, resource: str) -> None:
        with self._lock:
            self._states[resource] = _FuseState.HALF_OPEN
        logger.info("breaker half-open: %s", resource)

    def in_fuse(self, resource: str) -> bool:
        """Whether the resource's breaker is open or half-open."""
        with self._lock:
            return resource in self._states


fuse_registry = FuseRegistry()


def resource_in_fuse(resource: str) -> bool:
    """Whether the resource is fused according to the process-wide registry."""
    return fuse_registry.in_fuse(resource)