# SPDX-License-Identifier: LGPL-3.0-or-later
# ovfdeploy/vmware/nfc_lease.py
# -*- coding: utf-8 -*-
"""
HttpNfcLease lifecycle for OVF imports.

ImportVApp hands back a lease in state `initializing`. The server prepares the
target disks, flips the lease to `ready` (device URLs become valid) or to
`error`. While the client uploads it reports a percentage; it finishes with
exactly one of HttpNfcLeaseComplete or HttpNfcLeaseAbort.

    lease = acquire(endpoint, spec, folder, host, pool, logger=log)
    with LeaseGuard(lease):
        lease.await_ready(timeout_s=300)
        ...upload...
        lease.report_progress(100)
        lease.complete()

Any exit from the `with` block without complete() aborts the lease.
"""

from __future__ import annotations

import logging
import time
from enum import Enum
from typing import Any, Callable, Optional, Tuple

from ..core.cancel import Cancellation
from ..core.exceptions import DeviceUrlNotFoundError, LeaseError, LeaseTimeoutError
from ..core.logger import TRACE
from ..orchestrator.models import DeviceUrl, LeaseInfo


class LeaseState(str, Enum):
    INITIALIZING = "initializing"
    READY = "ready"
    ERROR = "error"
    DONE = "done"

    @classmethod
    def parse(cls, value: Any) -> "LeaseState":
        raw = getattr(value, "value", value)
        try:
            return cls(str(raw))
        except ValueError as e:
            raise LeaseError(f"unknown lease state {raw!r}") from e


_OPEN, _COMPLETED, _ABORTED = "open", "completed", "aborted"


class Lease:
    """
    Client-side view of one remote HttpNfcLease.

    All remote calls go through `endpoint` (see vmware/endpoint.py), so the
    class runs unchanged against pyVmomi or a test double.
    """

    def __init__(self, endpoint: Any, handle: Any, logger: Optional[logging.Logger] = None) -> None:
        self.endpoint = endpoint
        self.handle = handle
        self.logger = logger or logging.getLogger("ovfdeploy.lease")
        self._last_percent = -1
        self._release = _OPEN
        self._info: Optional[LeaseInfo] = None

    # ------------------------------------------------------------------ state

    @property
    def state(self) -> LeaseState:
        return LeaseState.parse(self.endpoint.lease_state(self.handle))

    @property
    def released(self) -> bool:
        return self._release != _OPEN

    @property
    def completed(self) -> bool:
        return self._release == _COMPLETED

    @property
    def last_percent(self) -> int:
        return self._last_percent

    def await_ready(
        self,
        timeout_s: Optional[float] = None,
        poll_interval_s: float = 0.5,
        max_poll_interval_s: float = 5.0,
        cancel: Optional[Cancellation] = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Block until the lease is ready.

        timeout_s=None waits forever. The wait between polls starts at
        poll_interval_s and doubles up to max_poll_interval_s; it is an
        Event wait, so cancel() wakes it immediately.
        """
        waiter = cancel or Cancellation()
        deadline = None if timeout_s is None else clock() + float(timeout_s)
        interval = max(float(poll_interval_s), 1e-3)
        cap = max(float(max_poll_interval_s), interval)
        polls = 0

        while True:
            waiter.raise_if_cancelled()
            state = self.state
            polls += 1
            if state is LeaseState.READY:
                self.logger.debug("Lease ready after %d poll(s)", polls)
                return
            if state is LeaseState.ERROR:
                raise LeaseError(self._remote_error_message(), state=state.value)
            if state is LeaseState.DONE:
                raise LeaseError("lease already done before it became ready", state=state.value)

            if deadline is not None:
                remaining = deadline - clock()
                if remaining <= 0:
                    raise LeaseTimeoutError(float(timeout_s))  # type: ignore[arg-type]
                sleep_for = min(interval, remaining)
            else:
                sleep_for = interval

            self.logger.log(TRACE, "Lease still %s; next poll in %.2fs", state.value, sleep_for)
            waiter.wait(sleep_for)
            interval = min(interval * 2, cap)

    def _remote_error_message(self) -> str:
        try:
            fault = self.endpoint.lease_error(self.handle)
        except Exception as e:
            self.logger.debug("Reading lease error failed: %s", e)
            return "lease entered error state"
        if fault is None:
            return "lease entered error state"
        msg = getattr(fault, "localizedMessage", None) or getattr(fault, "msg", None) or str(fault)
        return str(msg)

    # ------------------------------------------------------------------ info

    def info(self) -> LeaseInfo:
        if self._info is None:
            self._info = self.endpoint.lease_info(self.handle)
        return self._info

    def device_urls(self) -> Tuple[DeviceUrl, ...]:
        return tuple(self.info().device_urls)

    def entity(self) -> Any:
        return self.info().entity

    def device_url_for(self, device_id: str) -> DeviceUrl:
        for du in self.device_urls():
            if du.import_key == device_id:
                return du
        raise DeviceUrlNotFoundError(device_id)

    # ------------------------------------------------------------------ progress / release

    def report_progress(self, percent: float) -> bool:
        """
        Forward `percent` (clamped to 0..100) when it is above the last
        forwarded value. Returns True when an RPC was made.
        """
        if self.released:
            return False
        p = int(max(0, min(100, int(percent))))
        if p <= self._last_percent:
            return False
        self.endpoint.lease_progress(self.handle, p)
        self._last_percent = p
        self.logger.log(TRACE, "Lease progress %d%%", p)
        return True

    def complete(self) -> None:
        if self._release == _COMPLETED:
            raise LeaseError("lease already completed")
        if self._release == _ABORTED:
            raise LeaseError("lease already aborted")
        self.endpoint.lease_complete(self.handle)
        self._release = _COMPLETED
        self.logger.debug("Lease completed")

    def abort(self, fault: Any = None) -> None:
        """Best-effort abort. Never raises; a no-op once the lease is released."""
        if self.released:
            return
        self._release = _ABORTED
        try:
            self.endpoint.lease_abort(self.handle, fault)
            self.logger.debug("Lease aborted")
        except Exception as e:
            self.logger.warning("Lease abort failed (ignored): %s", e)


def acquire(
    endpoint: Any,
    import_spec: Any,
    folder: Any,
    host: Any,
    resource_pool: Any,
    *,
    logger: Optional[logging.Logger] = None,
) -> Lease:
    """ImportVApp; the returned lease is still `initializing`."""
    handle = endpoint.import_vapp(resource_pool, import_spec, folder, host)
    return Lease(endpoint, handle, logger=logger)


class LeaseGuard:
    """Abort the lease on any exit that did not go through complete()."""

    def __init__(self, lease: Lease, fault: Any = None) -> None:
        self.lease = lease
        self.fault = fault

    def __enter__(self) -> Lease:
        return self.lease

    def __exit__(self, exc_type, exc, tb) -> bool:
        if not self.lease.released:
            if exc is not None:
                self.lease.logger.debug("Aborting lease after %s", type(exc).__name__)
            self.lease.abort(self.fault)
        return False
