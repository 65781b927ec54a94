# SPDX-License-Identifier: LGPL-3.0-or-later
"""Tests for the HttpNfcLease state machine."""
from __future__ import annotations

import threading
from types import SimpleNamespace

import pytest

from fakes.fake_vsphere import FakeEndpoint, url_for
from ovfdeploy.core.cancel import Cancellation
from ovfdeploy.core.exceptions import DeployCancelled, DeviceUrlNotFoundError, LeaseError, LeaseTimeoutError
from ovfdeploy.vmware.nfc_lease import Lease, LeaseGuard, LeaseState, acquire


def _lease(**kw):
    ep = FakeEndpoint(**kw)
    return ep, acquire(ep, "spec", "folder", "host", "pool")


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


@pytest.mark.unit
class TestAwaitReady:
    def test_acquire_calls_import_vapp_once(self):
        ep, lease = _lease()
        assert ep.calls == ["import_vapp"]
        assert not lease.released

    def test_polls_until_ready(self):
        ep, lease = _lease(states=["initializing", "initializing", "ready"])
        lease.await_ready(timeout_s=5, poll_interval_s=0.001, max_poll_interval_s=0.002)
        assert ep.calls.count("lease_state") == 3

    def test_error_state_raises_remote_message(self):
        fault = SimpleNamespace(localizedMessage="Invalid configuration for device '0'.")
        _, lease = _lease(states=["initializing", "error"], lease_error=fault)

        with pytest.raises(LeaseError) as ei:
            lease.await_ready(poll_interval_s=0.001)
        assert "Invalid configuration for device '0'." in str(ei.value)
        assert ei.value.code == 31

    def test_done_is_not_ready(self):
        _, lease = _lease(states=["done"])
        with pytest.raises(LeaseError):
            lease.await_ready(poll_interval_s=0.001)

    def test_timeout(self):
        _, lease = _lease(states=["initializing"])
        with pytest.raises(LeaseTimeoutError) as ei:
            lease.await_ready(timeout_s=0.02, poll_interval_s=0.005, max_poll_interval_s=0.01)
        assert ei.value.code == 32
        assert isinstance(ei.value, LeaseError)

    def test_backoff_doubles_up_to_cap(self, monkeypatch):
        ep, lease = _lease(states=["initializing"] * 5 + ["ready"])
        waits = []
        cancel = Cancellation()
        monkeypatch.setattr(cancel, "wait", lambda s: waits.append(s))

        lease.await_ready(timeout_s=None, poll_interval_s=1.0, max_poll_interval_s=4.0, cancel=cancel)

        assert waits == [1.0, 2.0, 4.0, 4.0, 4.0]

    def test_last_wait_is_trimmed_to_deadline(self, monkeypatch):
        _, lease = _lease(states=["initializing"])
        clock = FakeClock()
        cancel = Cancellation()
        waits = []

        def fake_wait(s):
            waits.append(s)
            clock.now += s

        monkeypatch.setattr(cancel, "wait", fake_wait)
        with pytest.raises(LeaseTimeoutError):
            lease.await_ready(timeout_s=5.0, poll_interval_s=2.0, max_poll_interval_s=8.0, cancel=cancel, clock=clock)
        assert waits == [2.0, 3.0]

    def test_cancel_wakes_the_wait(self):
        _, lease = _lease(states=["initializing"])
        cancel = Cancellation()
        timer = threading.Timer(0.05, cancel.cancel)
        timer.start()
        try:
            with pytest.raises(DeployCancelled):
                lease.await_ready(timeout_s=None, poll_interval_s=30.0, cancel=cancel)
        finally:
            timer.cancel()

    def test_unknown_state_is_lease_error(self):
        with pytest.raises(LeaseError):
            LeaseState.parse("bogus")


@pytest.mark.unit
class TestProgressAndRelease:
    def test_progress_forwards_only_increasing_values(self):
        ep, lease = _lease()
        for p in (5, 5, 3, 40, 40.7, 41, 250):
            lease.report_progress(p)
        assert ep.percents == [5, 40, 41, 100]

    def test_progress_clamps_negative(self):
        ep, lease = _lease()
        assert lease.report_progress(-10) is True
        assert ep.percents == [0]

    def test_progress_errors_propagate(self):
        ep, lease = _lease(progress_error=RuntimeError("session expired"))
        with pytest.raises(RuntimeError):
            lease.report_progress(5)

    def test_complete_twice_raises(self):
        ep, lease = _lease()
        lease.complete()
        with pytest.raises(LeaseError):
            lease.complete()
        assert ep.completes == 1

    def test_complete_after_abort_raises(self):
        ep, lease = _lease()
        lease.abort()
        with pytest.raises(LeaseError):
            lease.complete()
        assert ep.completes == 0

    def test_abort_is_idempotent(self):
        ep, lease = _lease()
        lease.abort()
        lease.abort()
        assert ep.aborts == 1

    def test_abort_after_complete_is_noop(self):
        ep, lease = _lease()
        lease.complete()
        lease.abort()
        assert ep.aborts == 0

    def test_abort_swallows_remote_failure(self):
        ep, lease = _lease(abort_error=RuntimeError("lease gone"))
        lease.abort()
        assert ep.aborts == 1
        assert lease.released

    def test_device_url_lookup(self):
        du = url_for("/vm/disk-1")
        _, lease = _lease(device_urls=[url_for("/vm/disk-0"), du])
        assert lease.device_url_for("/vm/disk-1") == du
        with pytest.raises(DeviceUrlNotFoundError) as ei:
            lease.device_url_for("/vm/disk-9")
        assert "Couldn't find deviceURL for device '/vm/disk-9'" in str(ei.value)


@pytest.mark.unit
class TestLeaseGuard:
    def test_exception_aborts_and_propagates(self):
        ep, lease = _lease()
        with pytest.raises(ValueError):
            with LeaseGuard(lease):
                raise ValueError("upload failed")
        assert ep.aborts == 1

    def test_keyboard_interrupt_aborts(self):
        ep, lease = _lease()
        with pytest.raises(KeyboardInterrupt):
            with LeaseGuard(lease):
                raise KeyboardInterrupt()
        assert ep.aborts == 1

    def test_completed_lease_is_not_aborted(self):
        ep, lease = _lease()
        with LeaseGuard(lease):
            lease.complete()
        assert ep.aborts == 0
        assert ep.completes == 1

    def test_clean_exit_without_complete_aborts(self):
        ep, lease = _lease()
        with LeaseGuard(lease):
            pass
        assert ep.aborts == 1

    def test_abort_failure_does_not_mask_original_error(self):
        ep, lease = _lease(abort_error=RuntimeError("abort failed"))
        with pytest.raises(ValueError):
            with LeaseGuard(lease):
                raise ValueError("original")

    def test_guard_returns_lease(self):
        _, lease = _lease()
        with LeaseGuard(lease) as got:
            assert isinstance(got, Lease)
            got.complete()
