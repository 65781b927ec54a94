# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# ovfdeploy/vmware/datastore.py

"""
Datastore file access through the vSphere /folder HTTP interface.

    https://<host>/folder/<path>?dcPath=<datacenter>&dsName=<datastore>

HEAD probes existence, GET downloads, POST uploads (streamed through the
transfer engine). The SOAP session cookie authorises every call.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Optional
from urllib.parse import quote

import requests
from pyVmomi import vim  # type: ignore

from ..core.exceptions import TransferError, UnexpectedResponseError, VMwareError
from ..orchestrator.models import DEFAULT_CHUNK_SIZE
from .http_session import VsphereHttpSession
from .transfer import HttpDestination, LocalFileSource, ProgressCallback, UNKNOWN_TOTAL, transfer


def resolve_path(datastore_name: str, datacenter_name: str, path: str) -> str:
    """
    Relative /folder URL for `path` on a datastore.

        >>> resolve_path("ds1", "dc 1", "vm/a b.vmdk")
        '/folder/vm/a%20b.vmdk?dcPath=dc%201&dsName=ds1'
    """
    return "/folder/{}?dcPath={}&dsName={}".format(
        quote(str(path).lstrip("/"), safe="/"),
        quote(str(datacenter_name), safe=""),
        quote(str(datastore_name), safe=""),
    )


def datacenter_of(obj: Any) -> Any:
    """Walk `.parent` up from any inventory object to its Datacenter."""
    cur = obj
    for _ in range(0, 64):
        if cur is None:
            break
        if isinstance(cur, vim.Datacenter):  # type: ignore[attr-defined]
            return cur
        cur = getattr(cur, "parent", None)
    raise VMwareError(
        f"no Datacenter above {getattr(obj, 'name', obj)!r}",
        obj=str(getattr(obj, "name", obj)),
    )


class DatastoreClient:
    def __init__(
        self,
        logger: logging.Logger,
        http: VsphereHttpSession,
        datastore_name: str,
        datacenter_name: str,
        *,
        base_url: Optional[str] = None,
    ) -> None:
        if not datastore_name:
            raise ValueError("datastore name cannot be empty")
        if not datacenter_name:
            raise ValueError("datacenter name cannot be empty")
        self.logger = logger
        self.http = http
        self.datastore_name = datastore_name
        self.datacenter_name = datacenter_name
        self.base_url = (base_url or http.base_url).rstrip("/")

    @classmethod
    def from_datastore(
        cls,
        logger: logging.Logger,
        http: VsphereHttpSession,
        ds_obj: Any,
        *,
        base_url: Optional[str] = None,
    ) -> "DatastoreClient":
        dc = datacenter_of(ds_obj)
        return cls(logger, http, str(ds_obj.name), str(dc.name), base_url=base_url)

    def url(self, path: str) -> str:
        return self.base_url + resolve_path(self.datastore_name, self.datacenter_name, path)

    def _label(self, path: str) -> str:
        return f"[{self.datastore_name}] {path}"

    def exists(self, path: str) -> bool:
        url = self.url(path)
        try:
            resp = self.http.session.head(url, headers=self.http.auth_headers(), timeout=self.http.timeout)
        except requests.exceptions.RequestException as e:
            raise TransferError(f"HEAD {url} failed: {e}", cause_kind="connection", cause=e, url=url) from e
        status = int(resp.status_code)
        if 200 <= status < 300:
            return True
        if status == 404:
            return False
        raise UnexpectedResponseError(status, url=url)

    def download(
        self,
        path: str,
        local_path: Path,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        on_progress: Optional[ProgressCallback] = None,
    ) -> int:
        """
        Fetch a datastore file into `local_path`.

        Bytes land in a sibling *.part file first, renamed over the target
        only once the body has been read completely.
        """
        if int(chunk_size) < 1:
            raise ValueError(f"chunk_size must be >= 1, got {chunk_size}")
        url = self.url(path)
        local_path = Path(local_path)
        local_path.parent.mkdir(parents=True, exist_ok=True)
        self.logger.info("Downloading %s -> %s", self._label(path), local_path)

        try:
            resp = self.http.session.get(url, headers=self.http.auth_headers(), stream=True, timeout=self.http.timeout)
        except requests.exceptions.RequestException as e:
            raise TransferError(f"GET {url} failed: {e}", cause_kind="connection", cause=e, url=url) from e

        written = 0
        temp_path: Optional[Path] = None
        try:
            if resp.status_code != 200:
                raise TransferError(
                    f"GET {url} returned HTTP {resp.status_code}",
                    status=int(resp.status_code),
                    body=(resp.text or "")[:2000],
                    url=url,
                )
            length = resp.headers.get("Content-Length")
            total = int(length) if length else UNKNOWN_TOTAL

            with tempfile.NamedTemporaryFile(delete=False, dir=local_path.parent, suffix=".part") as tf:
                temp_path = Path(tf.name)
                for chunk in resp.iter_content(chunk_size=int(chunk_size)):
                    if not chunk:
                        continue
                    tf.write(chunk)
                    written += len(chunk)
                    if on_progress is not None:
                        on_progress(written, total)
            os.replace(temp_path, local_path)
            temp_path = None
        except (requests.exceptions.ConnectionError, requests.exceptions.ChunkedEncodingError) as e:
            raise TransferError(f"GET {url} interrupted: {e}", cause_kind="connection", cause=e, url=url) from e
        finally:
            resp.close()
            if temp_path is not None:
                try:
                    temp_path.unlink()
                except OSError:
                    pass

        self.logger.debug("Downloaded %d bytes to %s", written, local_path)
        return written

    def upload(
        self,
        path: str,
        local_path: Path,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        on_progress: Optional[ProgressCallback] = None,
    ) -> int:
        url = self.url(path)
        self.logger.info("Uploading %s -> %s", local_path, self._label(path))
        dest = HttpDestination(
            url=url,
            session=self.http.session,
            method="POST",
            headers=self.http.auth_headers({"Content-Type": "application/octet-stream"}),
            expected_status=(200, 201),
            timeout=self.http.timeout,
        )
        return transfer(LocalFileSource(local_path), dest, chunk_size, on_progress)
