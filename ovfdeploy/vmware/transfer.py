# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# ovfdeploy/vmware/transfer.py
"""
Chunked HTTP transfer engine.

One call moves one byte stream into one HTTP PUT/POST body, chunk by chunk,
so memory use is bounded by the chunk size whatever the payload size.

Sources (strategy pattern, same contract):
  - LocalFileSource   local file, size from os.stat, opened only for the transfer
  - RemoteUrlSource   HTTP GET streamed straight into the upload (a pipe)
  - StreamSource      caller-owned binary stream, never closed here

After every chunk handed to the HTTP layer the progress callback receives
(bytes_transferred, total_bytes); total is -1 when the source size is unknown.

Nothing here retries. Retry policy belongs to the caller.
"""

from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, BinaryIO, Callable, Dict, Iterator, List, Optional, Sequence

import requests

from ..core.cancel import Cancellation, check
from ..core.exceptions import TransferError
from ..orchestrator.models import DEFAULT_CHUNK_SIZE

ProgressCallback = Callable[[int, int], None]  # (bytes_transferred, total_bytes or -1)

UNKNOWN_TOTAL = -1

_CONNECTION_ERRORS = (
    requests.exceptions.ConnectionError,
    requests.exceptions.ChunkedEncodingError,
    requests.exceptions.Timeout,
)

log = logging.getLogger(__name__)


def _body_excerpt(resp: Any, limit: int = 2000) -> str:
    try:
        text = resp.text or ""
    except Exception:
        return ""
    return text[:limit]


# --------------------------------------------------------------------------------------
# Sources
# --------------------------------------------------------------------------------------
class OpenedSource:
    """A source that is open for reading: a total (or -1) and a chunk iterator."""

    def __init__(self, total: int, chunks: Callable[[int], Iterator[bytes]]) -> None:
        self.total = total
        self._chunks = chunks

    def iter_chunks(self, chunk_size: int) -> Iterator[bytes]:
        return self._chunks(chunk_size)


def _read_chunks(fh: BinaryIO, chunk_size: int) -> Iterator[bytes]:
    while True:
        chunk = fh.read(chunk_size)
        if not chunk:
            return
        yield chunk


class TransferSource(ABC):
    """Abstract byte source for transfer()."""

    description: str = "stream"

    @abstractmethod
    def open(self) -> Any:
        """Context manager yielding an OpenedSource."""
        ...


class LocalFileSource(TransferSource):
    def __init__(self, path: os.PathLike | str) -> None:
        self.path = Path(path)
        self.description = self.path.name or str(self.path)

    @contextmanager
    def open(self) -> Iterator[OpenedSource]:
        # Both calls raise OSError before any HTTP request is made.
        size = os.stat(self.path).st_size
        with open(self.path, "rb") as fh:
            yield OpenedSource(size, lambda n: _read_chunks(fh, n))


class StreamSource(TransferSource):
    """
    Wraps a caller-owned binary stream. `total` may be None when unknown;
    the stream is left open when the transfer ends.
    """

    def __init__(self, fileobj: BinaryIO, total: Optional[int] = None, description: str = "stream") -> None:
        self.fileobj = fileobj
        self.total = total
        self.description = description

    @contextmanager
    def open(self) -> Iterator[OpenedSource]:
        total = UNKNOWN_TOTAL if self.total is None else int(self.total)
        yield OpenedSource(total, lambda n: _read_chunks(self.fileobj, n))


class RemoteUrlSource(TransferSource):
    """
    A resource fetched with HTTP GET and piped chunk by chunk into the upload.
    """

    def __init__(
        self,
        url: str,
        session: Any,
        *,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.url = url
        self.session = session
        self.headers = dict(headers or {})
        self.timeout = timeout
        self.description = url.rsplit("/", 1)[-1] or url

    @contextmanager
    def open(self) -> Iterator[OpenedSource]:
        try:
            resp = self.session.get(self.url, headers=self.headers, stream=True, timeout=self.timeout)
        except _CONNECTION_ERRORS as e:
            raise TransferError(
                f"GET {self.url} failed: {e}", cause_kind="connection", cause=e, url=self.url
            ) from e

        try:
            status = int(getattr(resp, "status_code", 0) or 0)
            if not 200 <= status < 300:
                raise TransferError(
                    f"GET {self.url} returned HTTP {status}",
                    status=status,
                    body=_body_excerpt(resp),
                    url=self.url,
                )
            length = resp.headers.get("Content-Length") if getattr(resp, "headers", None) else None
            total = int(length) if length not in (None, "") else UNKNOWN_TOTAL
            yield OpenedSource(total, lambda n: (c for c in resp.iter_content(chunk_size=n) if c))
        finally:
            resp.close()


class _SizedBody:
    """Chunk iterator with a known length; requests frames it with Content-Length."""

    def __init__(self, chunks: Iterator[bytes], length: int) -> None:
        self._chunks = chunks
        self._length = int(length)

    def __iter__(self) -> Iterator[bytes]:
        return self._chunks

    def __len__(self) -> int:
        return self._length


# --------------------------------------------------------------------------------------
# Destination
# --------------------------------------------------------------------------------------
@dataclass
class HttpDestination:
    """
    An HTTP endpoint that accepts a streamed PUT or POST body.
    """

    url: str
    session: Any
    method: str = "POST"
    headers: Dict[str, str] = field(default_factory=dict)
    expected_status: Sequence[int] = (200, 201)
    timeout: Optional[float] = None

    def __post_init__(self) -> None:
        self.method = self.method.upper()
        if self.method not in ("PUT", "POST"):
            raise ValueError(f"upload method must be PUT or POST, got {self.method!r}")

    def send(self, body: Iterator[bytes], total: int) -> Any:
        # Framing is left to requests: Content-Length for a sized body,
        # Transfer-Encoding: chunked for a bare generator. Never both.
        headers = {k: v for k, v in self.headers.items() if k.lower() not in ("content-length", "transfer-encoding")}
        data: Any
        if total == 0:
            data = b""
        elif total > 0:
            data = _SizedBody(body, total)
        else:
            data = body
        try:
            resp = self.session.request(self.method, self.url, data=data, headers=headers, timeout=self.timeout)
        except _CONNECTION_ERRORS as e:
            raise TransferError(
                f"{self.method} {self.url} interrupted: {e}", cause_kind="connection", cause=e, url=self.url
            ) from e

        status = int(getattr(resp, "status_code", 0) or 0)
        if status not in self.expected_status:
            raise TransferError(
                f"{self.method} {self.url} returned HTTP {status}",
                status=status,
                body=_body_excerpt(resp),
                url=self.url,
            )
        return resp


# --------------------------------------------------------------------------------------
# Engine
# --------------------------------------------------------------------------------------
def transfer(
    source: TransferSource,
    destination: HttpDestination,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    on_progress: Optional[ProgressCallback] = None,
    *,
    cancel: Optional[Cancellation] = None,
) -> int:
    """
    Stream `source` into `destination`; return the number of bytes sent.

    Raises:
      ValueError       chunk_size < 1
      OSError          local source unreadable
      TransferError    non-success status or broken connection
      DeployCancelled  `cancel` was set between two chunks
    Exceptions raised by `on_progress` abort the transfer and propagate as-is.
    """
    if int(chunk_size) < 1:
        raise ValueError(f"chunk_size must be >= 1, got {chunk_size}")
    check(cancel)

    sent = [0]
    # Errors raised inside the body generator surface from deep inside
    # requests/urllib3, sometimes wrapped; keep the original to re-raise.
    inner: List[BaseException] = []

    with source.open() as opened:
        total = int(opened.total)

        def body() -> Iterator[bytes]:
            try:
                for chunk in opened.iter_chunks(int(chunk_size)):
                    check(cancel)
                    sent[0] += len(chunk)
                    yield chunk
                    if on_progress is not None:
                        on_progress(sent[0], total)
            except GeneratorExit:
                raise
            except BaseException as e:
                inner.append(e)
                raise

        log.debug(
            "transfer start: %s -> %s %s (total=%s, chunk=%d)",
            source.description,
            destination.method,
            destination.url,
            total,
            chunk_size,
        )
        try:
            destination.send(body(), total)
        except BaseException as e:
            if inner and inner[0] is not e:
                raise inner[0] from None
            raise

    log.debug("transfer done: %s (%d bytes)", source.description, sent[0])
    return sent[0]
