"""Business errors with codes that survive an RPC boundary."""

from __future__ import annotations

import json
from enum import Enum
from typing import Any, Callable, Iterable, Mapping, Optional, Union


class ErrorLabel(str, Enum):
    NORMAL = "normal"
    ABNORMAL = "abnormal"


UNKNOWN_ERROR = 100
MAX_SYSTEM_ERR = 1000


def _label(value: Union["ErrorLabel", str]) -> Union["ErrorLabel", str]:
    try:
        return ErrorLabel(value)
    except ValueError:
        return value


def _label_text(label: Union["ErrorLabel", str]) -> str:
    return label.value if isinstance(label, ErrorLabel) else str(label)


class MetaError(Exception):
    """An error with a numeric code, message, label and optional JSON data."""

    def __init__(
        self,
        code: int,
        msg: str,
        label: Union[ErrorLabel, str] = ErrorLabel.ABNORMAL,
        data: str = "",
    ) -> None:
        super().__init__(code, msg, label, data)
        self.code = int(code)
        self.msg = msg
        self.label = _label(label)
        self.data = data

    def __str__(self) -> str:
        return (
            f"code: {self.code}, msg: {self.msg}, "
            f"label: {_label_text(self.label)} data: {self.data}"
        )

    def __repr__(self) -> str:
        return (
            f"MetaError(code={self.code!r}, msg={self.msg!r}, "
            f"label={_label_text(self.label)!r}, data={self.data!r})"
        )

    def _key(self) -> tuple:
        return (self.code, self.msg, _label_text(self.label), self.data)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, MetaError):
            return NotImplemented
        return self._key() == other._key()

    def __hash__(self) -> int:
        return hash(self._key())

    def with_code(self, code: int) -> "MetaError":
        return MetaError(code, self.msg, self.label, self.data)

    def with_message(self, msg: str) -> "MetaError":
        return MetaError(self.code, msg, self.label, self.data)

    def extend_message(self, msg: str) -> "MetaError":
        """A copy whose message has msg appended after a space."""
        return MetaError(self.code, f"{self.msg} {msg}", self.label, self.data)

    def with_data(self, data: Mapping[str, Any]) -> "MetaError":
        """A copy carrying data serialised as JSON; raises TypeError if it cannot be."""
        encoded = json.dumps(dict(data), sort_keys=True, separators=(",", ":"), ensure_ascii=False)
        return MetaError(self.code, self.msg, self.label, encoded)


class StatusError(Exception):
    """An RPC status: a code, a message and error-info metadata details."""

    def __init__(self, code: int, message: str, details: Iterable[Mapping[str, str]] = ()) -> None:
        super().__init__(code, message)
        self.code = int(code)
        self.message = message
        self.details = tuple(dict(d) for d in details)

    def __str__(self) -> str:
        return f"rpc error: code = {self.code} desc = {self.message}"


UNKNOWN_ERR = MetaError(100, "unknown error", ErrorLabel.ABNORMAL)
SYS_ERR_TIMEOUT_ERR = MetaError(101, "system timeout", ErrorLabel.ABNORMAL)
MONGO_CONTEXT_TIMEOUT_ERR = MetaError(110, "mongo context timeout", ErrorLabel.ABNORMAL)
MONGO_FIND_ONE_RESULT_NIL_ERR = MetaError(111, "mongo find one result nil", ErrorLabel.ABNORMAL)
HTTP_REQUEST_ERR = MetaError(120, "http request err", ErrorLabel.ABNORMAL)
REDIS_LOCK_TIMEOUT_ERR = MetaError(501, "redis lock timeout", ErrorLabel.ABNORMAL)
PRODUCER_NOT_INIT_ERR = MetaError(511, "producer not init", ErrorLabel.ABNORMAL)
PRODUCER_STOP_ERR = MetaError(512, "producer stopped", ErrorLabel.ABNORMAL)
HTTP_STATUS_ERR = MetaError(513, "http status err", ErrorLabel.ABNORMAL)
SYS_ERR_SENTINEL_BREAKER = MetaError(601, "服务熔断", ErrorLabel.ABNORMAL)
RESOURCE_ERR_SENTINEL_BREAKER = MetaError(602, "外部资源熔断", ErrorLabel.ABNORMAL)

PARAMS_ERROR = MetaError(1001, "参数错误", ErrorLabel.ABNORMAL)
FIND_ONE_RESULT_NIL_ERROR = MetaError(1201, "findOne result is nil", ErrorLabel.ABNORMAL)
TRANS_OBJECT_ID_ERROR = MetaError(1203, "TransObjectIdError", ErrorLabel.ABNORMAL)
DOMAIN_OPTION_ERROR = MetaError(1203, "查询或修改条件错误", ErrorLabel.ABNORMAL)


def to_status_error(err: MetaError) -> StatusError:
    """Encode a MetaError as a status with its fields in the details."""
    info = {
        "code": str(err.code),
        "msg": err.msg,
        "label": _label_text(err.label),
        "data": err.data,
    }
    return StatusError(err.code, err.msg, [info])


def _parse_code(text: str) -> int:
    try:
        return int(text, 10)
    except ValueError:
        return 0


def parse_error(err: BaseException) -> MetaError:
    """Recover a MetaError from any exception."""
    if isinstance(err, MetaError):
        return err
    if isinstance(err, StatusError):
        code = err.code
        msg = err.message
        label: Union[ErrorLabel, str] = ErrorLabel.ABNORMAL
        data = ""
        for detail in err.details:
            if detail.get("code", ""):
                code = _parse_code(detail["code"])
            if detail.get("msg", ""):
                msg = detail["msg"]
            if detail.get("data", ""):
                data = detail["data"]
            if detail.get("label", ""):
                label = detail["label"]
        return MetaError(code, msg, label, data)
    return MetaError(UNKNOWN_ERROR, str(err), ErrorLabel.ABNORMAL)


def server_middleware(handler: Callable[..., Any]) -> Callable[..., Any]:
    """Wrap a server handler so that any error leaves it as a StatusError."""

    def wrapped(ctx: Any, req: Any) -> Any:
        try:
            return handler(ctx, req)
        except Exception as exc:
            raise to_status_error(parse_error(exc)) from exc

    return wrapped


def client_middleware(invoker: Callable[..., Any]) -> Callable[..., Any]:
    """Wrap a client invoker so that any error arrives as a MetaError."""

    def wrapped(*args: Any, **kwargs: Any) -> Any:
        try:
            return invoker(*args, **kwargs)
        except Exception as exc:
            meta: Optional[MetaError] = parse_error(exc)
            if meta is exc:
                raise
            raise meta from exc

    return wrapped