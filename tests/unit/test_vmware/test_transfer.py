# SPDX-License-Identifier: LGPL-3.0-or-later
"""Tests for the chunked transfer engine."""
from __future__ import annotations

import io
import math

import pytest

from fakes.fake_http import FakeResponse, FakeSession
from ovfdeploy.core.cancel import Cancellation
from ovfdeploy.core.exceptions import DeployCancelled, TransferError
from ovfdeploy.vmware.transfer import (
    HttpDestination,
    LocalFileSource,
    RemoteUrlSource,
    StreamSource,
    transfer,
)

UPLOAD_URL = "https://10.0.0.5/nfc/52a1/disk-0.vmdk"


def _dest(session, method="POST"):
    return HttpDestination(url=UPLOAD_URL, session=session, method=method, headers={"Cookie": "c=1"})


def _write(tmp_path, size, name="disk.vmdk"):
    p = tmp_path / name
    p.write_bytes(bytes(i % 251 for i in range(size)))
    return p


@pytest.mark.unit
class TestLocalTransfer:
    @pytest.mark.parametrize("size,chunk", [(10, 4), (8, 4), (1, 1024), (3 * 1024 + 1, 1024)])
    def test_callback_count_is_ceil_of_size_over_chunk(self, tmp_path, size, chunk):
        src = _write(tmp_path, size)
        session = FakeSession()
        seen = []

        sent = transfer(LocalFileSource(src), _dest(session), chunk, lambda t, n: seen.append((t, n)))

        assert sent == size
        assert len(seen) == math.ceil(size / chunk)
        assert seen[-1] == (size, size)
        assert [t for t, _ in seen] == sorted(t for t, _ in seen)
        assert b"".join(session.uploads[0][3]) == src.read_bytes()

    def test_empty_file_gives_no_callbacks(self, tmp_path):
        src = _write(tmp_path, 0)
        session = FakeSession()
        seen = []

        assert transfer(LocalFileSource(src), _dest(session), 4, lambda t, n: seen.append((t, n))) == 0
        assert seen == []
        assert session.uploads[0][2]["Content-Length"] == "0"

    def test_known_size_sends_content_length(self, tmp_path):
        src = _write(tmp_path, 5)
        session = FakeSession()
        transfer(LocalFileSource(src), _dest(session, "PUT"), 2)

        method, url, headers, chunks = session.uploads[0]
        assert method == "PUT"
        assert url == UPLOAD_URL
        assert headers["Content-Length"] == "5"
        assert "Transfer-Encoding" not in headers
        assert headers["Cookie"] == "c=1"
        assert [len(c) for c in chunks] == [2, 2, 1]

    def test_missing_file_raises_before_any_request(self, tmp_path):
        session = FakeSession()
        with pytest.raises(OSError):
            transfer(LocalFileSource(tmp_path / "nope.vmdk"), _dest(session), 4)
        assert session.calls == []

    def test_non_positive_chunk_size_rejected(self, tmp_path):
        src = _write(tmp_path, 4)
        with pytest.raises(ValueError):
            transfer(LocalFileSource(src), _dest(FakeSession()), 0)


@pytest.mark.unit
class TestTransferFailures:
    def test_error_status_carries_status_and_body(self, tmp_path):
        src = _write(tmp_path, 4)
        session = FakeSession()
        session.responses[("POST", UPLOAD_URL)] = FakeResponse(500, text="disk full")

        with pytest.raises(TransferError) as ei:
            transfer(LocalFileSource(src), _dest(session), 2)
        assert ei.value.status == 500
        assert ei.value.body == "disk full"
        assert ei.value.code == 40

    def test_created_is_accepted(self, tmp_path):
        src = _write(tmp_path, 4)
        session = FakeSession()
        session.responses[("PUT", UPLOAD_URL)] = FakeResponse(201)
        assert transfer(LocalFileSource(src), _dest(session, "PUT"), 2) == 4

    def test_connection_drop_is_transfer_error(self, tmp_path):
        src = _write(tmp_path, 10)
        session = FakeSession()
        session.fail_upload_after = 1

        with pytest.raises(TransferError) as ei:
            transfer(LocalFileSource(src), _dest(session), 4)
        assert ei.value.cause_kind == "connection"
        assert ei.value.status is None

    def test_callback_exception_propagates_unchanged(self, tmp_path):
        src = _write(tmp_path, 10)

        class Boom(Exception):
            pass

        def cb(t, n):
            raise Boom("lease progress failed")

        with pytest.raises(Boom):
            transfer(LocalFileSource(src), _dest(FakeSession()), 4, cb)

    def test_cancel_between_chunks(self, tmp_path):
        src = _write(tmp_path, 12)
        session = FakeSession()
        cancel = Cancellation()

        with pytest.raises(DeployCancelled):
            transfer(LocalFileSource(src), _dest(session), 4, lambda t, n: cancel.cancel(), cancel=cancel)
        assert session.uploads == []

    def test_cancelled_before_start_makes_no_request(self, tmp_path):
        src = _write(tmp_path, 4)
        session = FakeSession()
        cancel = Cancellation()
        cancel.cancel("stop")
        with pytest.raises(DeployCancelled):
            transfer(LocalFileSource(src), _dest(session), 4, cancel=cancel)
        assert session.calls == []

    def test_bad_method_rejected(self):
        with pytest.raises(ValueError):
            HttpDestination(url=UPLOAD_URL, session=FakeSession(), method="PATCH")


@pytest.mark.unit
class TestOtherSources:
    def test_stream_with_unknown_total_reports_minus_one(self):
        buf = io.BytesIO(b"abcdefg")
        session = FakeSession()
        seen = []

        sent = transfer(StreamSource(buf), _dest(session), 3, lambda t, n: seen.append((t, n)))

        assert sent == 7
        assert seen == [(3, -1), (6, -1), (7, -1)]
        assert "Content-Length" not in session.uploads[0][2]
        assert session.uploads[0][2]["Transfer-Encoding"] == "chunked"
        assert not buf.closed

    def test_stream_with_declared_total(self):
        seen = []
        transfer(StreamSource(io.BytesIO(b"abcd"), total=4), _dest(FakeSession()), 2, lambda t, n: seen.append((t, n)))
        assert seen == [(2, 4), (4, 4)]

    def test_remote_pipe(self):
        src_url = "http://depot/ovf/disk-0.vmdk"
        session = FakeSession()
        resp = FakeResponse(200, headers={"Content-Length": "6"}, chunks=[b"abc", b"def"])
        session.responses[("GET", src_url)] = resp
        seen = []

        sent = transfer(RemoteUrlSource(src_url, session), _dest(session), 3, lambda t, n: seen.append((t, n)))

        assert sent == 6
        assert seen == [(3, 6), (6, 6)]
        assert session.uploads[0][3] == [b"abc", b"def"]
        assert resp.closed

    def test_remote_source_without_length(self):
        src_url = "http://depot/ovf/disk-0.vmdk"
        session = FakeSession()
        session.responses[("GET", src_url)] = FakeResponse(200, chunks=[b"ab"])
        seen = []
        transfer(RemoteUrlSource(src_url, session), _dest(session), 2, lambda t, n: seen.append((t, n)))
        assert seen == [(2, -1)]

    def test_remote_source_error_status(self):
        src_url = "http://depot/ovf/missing.vmdk"
        session = FakeSession()
        session.responses[("GET", src_url)] = FakeResponse(404, text="nope")

        with pytest.raises(TransferError) as ei:
            transfer(RemoteUrlSource(src_url, session), _dest(session), 2)
        assert ei.value.status == 404
        assert session.uploads == []
