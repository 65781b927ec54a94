# SPDX-License-Identifier: LGPL-3.0-or-later
# ovfdeploy/core/exceptions.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence


def _safe_int(x: Any, default: int = 1) -> int:
    try:
        return int(x)
    except Exception:
        return default


def _clamp_exit_code(code: int) -> int:
    # Exit codes are 0..255.
    if code < 0:
        return 1
    if code > 255:
        return 255
    return code


def _one_line(s: str, limit: int = 600) -> str:
    s = (s or "").strip().replace("\r", " ").replace("\n", " ")
    s = " ".join(s.split())
    return s if len(s) <= limit else (s[: limit - 3] + "...")


_SECRET_KEY_PARTS = (
    "pass",
    "password",
    "passwd",
    "secret",
    "token",
    "apikey",
    "api_key",
    "auth",
    "cookie",
    "session",
    "bearer",
    "private",
)

REDACTED = "***REDACTED***"


def _is_secret_key(k: str) -> bool:
    ks = (k or "").lower()
    return any(p in ks for p in _SECRET_KEY_PARTS)


def _redact(value: Any, key: str = "") -> Any:
    if key and _is_secret_key(key):
        return REDACTED
    if isinstance(value, dict):
        return {k: _redact(v, str(k)) for k, v in value.items()}
    return value


def _format_context_compact(ctx: Dict[str, Any]) -> str:
    # Stable order, redaction, single-line.
    parts = []
    for k in sorted(ctx.keys()):
        v = _redact(ctx.get(k), str(k))
        parts.append(f"{k}={v!r}" if v != REDACTED else f"{k}=<redacted>")
    return ", ".join(parts)


@dataclass(eq=False)
class OvfDeployError(Exception):
    """
    Base project error with:
      - stable fields for reporting/JSON
      - readable __str__ (what users see)
      - safe code handling (never crashes on int())
    """
    code: int = 1
    msg: str = "error"
    cause: Optional[BaseException] = None
    context: Optional[Dict[str, Any]] = None

    def __post_init__(self) -> None:
        self.code = _clamp_exit_code(_safe_int(self.code, default=1))
        self.msg = _one_line(self.msg) or self.__class__.__name__
        if self.context is None:
            self.context = {}
        super().__init__(self.msg)
        # Some tooling inspects Exception.args directly.
        self.args = (self.msg,)

    def with_context(self, **ctx: Any) -> "OvfDeployError":
        if self.context is None:
            self.context = {}
        self.context.update(ctx)
        return self

    def user_message(self, *, include_context: bool = False, include_cause: bool = False) -> str:
        """
        Human-friendly message for CLI output/logs.
        """
        parts = [self.msg or self.__class__.__name__]

        if include_context and self.context:
            parts.append(f"[{_one_line(_format_context_compact(self.context), limit=600)}]")

        if include_cause and self.cause is not None:
            parts.append(f"(cause: {type(self.cause).__name__}: {_one_line(str(self.cause))})")

        return " ".join(parts)

    def __str__(self) -> str:
        return self.user_message(include_context=False, include_cause=False)

    def to_dict(self, *, include_cause: bool = False) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "type": self.__class__.__name__,
            "code": self.code,
            "message": self.msg,
            "context": {k: _redact(v, str(k)) for k, v in (self.context or {}).items()},
        }
        if include_cause and self.cause is not None:
            d["cause"] = {"type": type(self.cause).__name__, "message": _one_line(str(self.cause))}
        return d


class Fatal(OvfDeployError):
    """
    User-facing fatal error (exit code should be honored by top-level main()).
    """
    pass


class VMwareError(OvfDeployError):
    """
    vSphere/vCenter operation failed outside the deploy state machine
    (connection, inventory lookup, datacenter resolution).
    """

    def __init__(self, msg: str = "vSphere operation failed", *, code: int = 50,
                 cause: Optional[BaseException] = None, **context: Any) -> None:
        super().__init__(code=code, msg=msg, cause=cause, context=context or None)


class MissingParameterError(OvfDeployError):
    """A mandatory deployment parameter is absent. Raised before any remote call."""

    def __init__(self, field: str) -> None:
        self.field = field
        super().__init__(code=2, msg=f"parameter {field} required", context={"field": field})


class InvalidParameterError(OvfDeployError):
    def __init__(self, msg: str, **context: Any) -> None:
        super().__init__(code=2, msg=msg, context=context or None)


class RemoteValidationError(OvfDeployError):
    """CreateImportSpec rejected the descriptor. No lease exists at this point."""

    def __init__(self, messages: Sequence[str]) -> None:
        self.messages: List[str] = [str(m) for m in messages]
        first = self.messages[0] if self.messages else "import spec rejected"
        super().__init__(code=30, msg=first, context={"errors": list(self.messages)})


class LeaseError(OvfDeployError):
    def __init__(self, remote_message: str, **context: Any) -> None:
        self.remote_message = remote_message
        super().__init__(code=31, msg=f"NFC lease error: {remote_message}", context=context or None)


class LeaseTimeoutError(LeaseError):
    def __init__(self, timeout_s: float) -> None:
        self.timeout_s = timeout_s
        super().__init__(f"lease did not leave 'initializing' within {timeout_s:g}s", timeout_s=timeout_s)
        self.code = 32


class DeviceUrlNotFoundError(OvfDeployError):
    def __init__(self, device_id: str) -> None:
        self.device_id = device_id
        super().__init__(
            code=33,
            msg=f"Couldn't find deviceURL for device '{device_id}'",
            context={"device_id": device_id},
        )


class TransferError(OvfDeployError):
    """
    HTTP-level transfer failure.

    status/body are set when the peer answered with a non-success status;
    cause_kind is "connection" when the stream broke before an answer.
    """

    def __init__(
        self,
        msg: str,
        *,
        status: Optional[int] = None,
        body: str = "",
        cause_kind: Optional[str] = None,
        cause: Optional[BaseException] = None,
        **context: Any,
    ) -> None:
        self.status = status
        self.body = body
        self.cause_kind = cause_kind
        ctx: Dict[str, Any] = dict(context)
        if status is not None:
            ctx["status"] = status
        if cause_kind:
            ctx["cause_kind"] = cause_kind
        super().__init__(code=40, msg=msg, cause=cause, context=ctx or None)


class UnexpectedResponseError(OvfDeployError):
    def __init__(self, status: int, url: str = "") -> None:
        self.status = status
        super().__init__(code=41, msg=f"unexpected HTTP status {status}", context={"url": url} if url else None)


class DeployCancelled(OvfDeployError):
    def __init__(self, msg: str = "deployment cancelled") -> None:
        super().__init__(code=130, msg=msg)


def wrap_fatal(msg: str, exc: Optional[BaseException] = None, code: int = 1, **context: Any) -> Fatal:
    return Fatal(code=code, msg=msg, cause=exc, context=context or None)


def format_exception_for_cli(e: BaseException, *, verbose: int = 0) -> str:
    """
    One-liner output for CLI.

    verbose=0: just message
    verbose=1: message + compact context (if any)
    verbose>=2: message + context + cause
    """
    if isinstance(e, OvfDeployError):
        return e.user_message(
            include_context=(verbose >= 1),
            include_cause=(verbose >= 2),
        )

    if verbose >= 2:
        return f"{type(e).__name__}: {_one_line(str(e))}"
    return _one_line(str(e)) or type(e).__name__
