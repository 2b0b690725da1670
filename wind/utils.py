"""Small helpers: strings, time, ids, randomness and buffer pooling."""

from __future__ import annotations

import dataclasses
import hashlib
import io
import json
import os
import random
import re
import threading
import time
import uuid
from datetime import datetime, timedelta
from typing import Any, List, Optional, Union


def _json_default(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    raise TypeError(f"cannot serialise {type(value).__name__}")


def struct_to_json(value: Any) -> str:
    """Compact JSON of value; empty for None or anything unserialisable."""
    if value is None:
        return ""
    try:
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=_json_default)
    except (TypeError, ValueError):
        return ""


def first_upper(s: str) -> str:
    return s[:1].upper() + s[1:]


def first_lower(s: str) -> str:
    return s[:1].lower() + s[1:]


def gen_conv_id(user_id1: int, user_id2: int) -> str:
    """Conversation id of two users, smaller id first."""
    low, high = sorted((user_id1, user_id2))
    return f"{low}_{high}"


def md5_hex(content: str) -> str:
    return hashlib.md5(content.encode("utf-8")).hexdigest()


def no_dash_uuid() -> str:
    """A random UUID without dashes."""
    return uuid.uuid4().hex


def current_millis() -> int:
    return time.time_ns() // 1_000_000


def current_second() -> int:
    return int(time.time())


def use_time_to_str(seconds: Union[float, timedelta]) -> str:
    """Human form of an elapsed time in us, ms or s with two decimals."""
    if isinstance(seconds, timedelta):
        nanos = ((seconds.days * 86400 + seconds.seconds) * 1_000_000 + seconds.microseconds) * 1000
    else:
        nanos = round(seconds * 1_000_000_000)
    if nanos < 1_000_000:
        return f"{nanos / 1_000:.2f}us"
    if nanos < 1_000_000_000:
        return f"{nanos / 1_000_000:.2f}ms"
    return f"{nanos / 1_000_000_000:.2f}s"


_TIME_TOKENS = (
    ("YYYY", "%Y"),
    ("YY", "%y"),
    ("MM", "%m"),
    ("DD", "%d"),
    ("HH", "%H"),
    ("mm", "%M"),
    ("ss", "%S"),
)


def format_time(t: datetime, fmt: str) -> str:
    """Format t with YYYY, YY, MM, DD, HH, mm and ss placeholders."""
    pattern = fmt.replace("%", "%%")
    for token, directive in _TIME_TOKENS:
        pattern = pattern.replace(token, directive)
    return t.strftime(pattern)


def exists(path: Union[str, os.PathLike]) -> bool:
    return os.path.exists(path)


_SERVICE_ROOT = re.compile(r"(.*?/service/.+?/).*")


def change_position() -> Optional[str]:
    """Move to the enclosing service directory; return it, or None if not inside one."""
    match = _SERVICE_ROOT.search(os.getcwd())
    if match is None:
        return None
    target = match.group(1)
    try:
        os.chdir(target)
    except OSError:
        return None
    return target


class Rand:
    """A thread-safe random source."""

    def __init__(self, seed: Optional[int] = None) -> None:
        self._random = random.Random(time.time_ns() if seed is None else seed)
        self._lock = threading.Lock()

    def _below(self, n: int, limit: int) -> int:
        if n <= 0 or n > limit:
            raise ValueError(f"invalid argument: n must be in 1..{limit}")
        with self._lock:
            return self._random.randrange(n)

    def int63n(self, n: int) -> int:
        """A random integer in [0, n)."""
        return self._below(n, (1 << 63) - 1)

    def int31n(self, n: int) -> int:
        """A random integer in [0, n) for 32-bit n."""
        return self._below(n, (1 << 31) - 1)


class SnowflakeNode:
    """Generates 63-bit time-ordered ids: 41 bits time, 10 bits node, 12 bits step."""

    EPOCH_MS = 1288834974657
    NODE_BITS = 10
    STEP_BITS = 12
    NODE_MAX = (1 << NODE_BITS) - 1
    STEP_MASK = (1 << STEP_BITS) - 1

    def __init__(self, node_id: int) -> None:
        if not 0 <= node_id <= self.NODE_MAX:
            raise ValueError(f"Node number must be between 0 and {self.NODE_MAX}")
        self.node_id = node_id
        self._lock = threading.Lock()
        self._start_ms = time.time_ns() // 1_000_000 - self.EPOCH_MS
        self._mono_start = time.monotonic_ns()
        self._last = 0
        self._step = 0

    def _now(self) -> int:
        return self._start_ms + (time.monotonic_ns() - self._mono_start) // 1_000_000

    def generate(self) -> int:
        with self._lock:
            now = self._now()
            if now == self._last:
                self._step = (self._step + 1) & self.STEP_MASK
                if self._step == 0:
                    while now <= self._last:
                        now = self._now()
            else:
                self._step = 0
            self._last = now
            return (now << (self.NODE_BITS + self.STEP_BITS)) | (self.node_id << self.STEP_BITS) | self._step


_node: Optional[SnowflakeNode] = None


def init_snowflake(node_id: int) -> None:
    global _node
    _node = SnowflakeNode(node_id)


def _require_node() -> SnowflakeNode:
    if _node is None:
        raise RuntimeError("snowflake not init")
    return _node


def get_snowflake_id() -> str:
    return str(_require_node().generate())


def get_snowflake_id_int64() -> int:
    return _require_node().generate()


class BufferPool:
    """A thread-safe pool of reusable in-memory byte buffers."""

    def __init__(self) -> None:
        self._free: List[io.BytesIO] = []
        self._lock = threading.Lock()

    def get(self) -> io.BytesIO:
        with self._lock:
            if self._free:
                return self._free.pop()
        return io.BytesIO()

    def put(self, buffer: io.BytesIO) -> None:
        buffer.seek(0)
        buffer.truncate(0)
        with self._lock:
            self._free.append(buffer)