"""Pick a ready connection by target host, by label, or round-robin.

A request may name a downstream host, and is then sent only to that host. It
may also name a label, and is then sent to connections carrying that label.
Without either it goes to the ``stable`` label. Connections whose breaker is
open are skipped, unless more than half of the candidates would have to be
skipped.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Tuple, Union

from . import constants
from .breaker import client_scope, resource_in_fuse
from .context import Context
from .discovery import Address

logger = logging.getLogger(__name__)

STABLE_LABEL = "stable"
STRICT = "Strict"
TOLERATE = "Tolerate"


class NoSubConnError(Exception):
    """No connection is available for the request."""

    def __init__(self, message: str = "sub conn is empty") -> None:
        super().__init__(message)


@dataclass(frozen=True)
class _Conn:
    sub_conn: Any
    addr: str


ReadyConns = Union[Mapping[Any, Address], Iterable[Tuple[Any, Address]]]


class Picker:
    """Chooses a connection for each request; safe to share between threads."""

    def __init__(
        self,
        by_host: Mapping[str, List[_Conn]],
        by_label: Mapping[str, List[_Conn]],
    ) -> None:
        self._by_host: Dict[str, List[_Conn]] = {k: list(v) for k, v in by_host.items()}
        self._by_label: Dict[str, List[_Conn]] = {k: list(v) for k, v in by_label.items()}
        self._next = 0
        self._lock = threading.Lock()

    def _advance(self) -> int:
        with self._lock:
            self._next += 1
            return self._next

    def _candidates(self, ctx: Context) -> List[_Conn]:
        label = ctx.value(constants.BALANCE_TARGET_LABEL)
        if not isinstance(label, str) or not label:
            label = STABLE_LABEL
        conns = self._by_label.get(label, [])
        if conns:
            return conns
        if label == STABLE_LABEL:
            raise NoSubConnError()
        conns = self._by_label.get(STABLE_LABEL, [])
        if not conns:
            raise NoSubConnError()
        return conns

    def pick(self, ctx: Context) -> Any:
        """Return the chosen connection, or raise NoSubConnError."""
        if not self._by_host and not self._by_label:
            raise NoSubConnError("no SubConn is available")
        host = ctx.value(constants.BALANCE_TARGET_HOST_NAME)
        counter = self._advance()
        if isinstance(host, str) and host:
            conns = self._by_host.get(host, [])
            if not conns:
                raise NoSubConnError()
            return conns[counter % len(conns)].sub_conn

        conns = self._candidates(ctx)
        conn = conns[counter % len(conns)]
        # Give up on skipping once more than half of the candidates are fused.
        attempts = len(conns) // 2 + 1
        for i in range(attempts):
            if not resource_in_fuse(client_scope(conn.addr)):
                break
            counter += 1
            conn = conns[counter % len(conns)]
            if attempts == i + 1:
                logger.error("every downstream is fused, using %s", conn.addr)

        chosen = ctx.value(constants.GRPC_CLIENT_ADDR)
        if isinstance(chosen, dict):
            chosen["addr"] = conn.addr
        return conn.sub_conn


def _pairs(ready: ReadyConns) -> Iterable[Tuple[Any, Address]]:
    if isinstance(ready, Mapping):
        return ready.items()
    return ready


def build_picker(ready: ReadyConns) -> Picker:
    """Build a picker from ready connections and their addresses."""
    by_host: Dict[str, List[_Conn]] = {}
    by_label: Dict[str, List[_Conn]] = {}
    for sub_conn, address in _pairs(ready):
        host = address.attributes.get("hostName", "")
        label = address.attributes.get("label", "")
        conn = _Conn(sub_conn, address.addr)
        by_host.setdefault(host, []).append(conn)
        by_label.setdefault(label, []).append(conn)
    return Picker(by_host, by_label)