# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# ovfdeploy/orchestrator/deployer.py
"""
OVF deployment: descriptor -> import spec -> lease -> disk uploads -> VM.

    result = OvfDeployer(logger, endpoint, http, options).deploy(request)

Lease progress runs 0..5 % for preparation, 5..95 % for the uploads (each
file weighted by its size), then 100 % right before HttpNfcLeaseComplete.
Any failure after ImportVApp aborts the lease exactly once and re-raises the
original error.
"""

from __future__ import annotations

import logging
import os
from fractions import Fraction
from pathlib import Path
from typing import Any, Callable, List, Optional, Sequence, Tuple

from ..core.cancel import Cancellation, check
from ..core.exceptions import RemoteValidationError, TransferError
from ..core.logger import Log
from ..core.utils import U
from ..vmware.http_session import VsphereHttpSession
from ..vmware.nfc_lease import Lease, LeaseGuard, acquire
from ..vmware.transfer import HttpDestination, LocalFileSource, RemoteUrlSource, TransferSource, transfer
from ..vmware.vmware_utils import is_remote_location, local_location, sibling_location, substitute_host
from .models import DeploymentRequest, DeployOptions, DeployResult, FileItem, ImportSpecResult

TransferCallback = Callable[[FileItem, int, int], None]  # (item, transferred, total or -1)
PercentCallback = Callable[[int], None]

STREAM_VMDK_CONTENT_TYPE = "application/x-vnd.vmware-streamVmdk"

PREPARED_PERCENT = 5
UPLOAD_BAND = 90


def _bands(sizes: Sequence[Optional[int]]) -> List[Tuple[Fraction, Fraction]]:
    """
    (start, width) of each file inside the upload band, as fractions of 1.

    Widths follow the declared sizes when every size is known and the sum is
    positive; otherwise each file gets an equal slice.
    """
    n = len(sizes)
    if n == 0:
        return []
    if all(s is not None and s >= 0 for s in sizes) and sum(sizes) > 0:  # type: ignore[arg-type]
        grand = sum(sizes)  # type: ignore[arg-type]
        widths = [Fraction(int(s), grand) for s in sizes]  # type: ignore[arg-type]
    else:
        widths = [Fraction(1, n)] * n
    out: List[Tuple[Fraction, Fraction]] = []
    start = Fraction(0)
    for w in widths:
        out.append((start, w))
        start += w
    return out


def band_percent(start: Fraction, width: Fraction, transferred: int, total: int) -> int:
    """5 + floor(90 * (start + width * transferred / total))."""
    if total <= 0:
        frac = start + width
    else:
        frac = start + width * Fraction(min(max(transferred, 0), total), total)
    return PREPARED_PERCENT + int(UPLOAD_BAND * frac)


class OvfDeployer:
    def __init__(
        self,
        logger: logging.Logger,
        endpoint: Any,
        http: VsphereHttpSession,
        options: Optional[DeployOptions] = None,
    ) -> None:
        self.logger = logger
        self.endpoint = endpoint
        self.http = http
        self.options = options or DeployOptions()

    # ------------------------------------------------------------------ helpers

    def read_descriptor(self, descriptor: str) -> str:
        if is_remote_location(descriptor):
            resp = self.http.session.get(descriptor, timeout=self.options.http_timeout_s)
            try:
                if resp.status_code != 200:
                    raise TransferError(
                        f"GET {descriptor} returned HTTP {resp.status_code}",
                        status=int(resp.status_code),
                        body=(resp.text or "")[:2000],
                        url=descriptor,
                    )
                return resp.text
            finally:
                resp.close()
        return Path(local_location(descriptor)).read_text(encoding="utf-8")

    def create_import_spec(self, request: DeploymentRequest, log: Any) -> ImportSpecResult:
        descriptor_xml = self.read_descriptor(request.descriptor)
        result = self.endpoint.create_import_spec(
            descriptor_xml,
            request.resource_pool,
            request.datastore,
            entity_name=request.vm_name,
            host=request.host,
            disk_provisioning=request.disk_provisioning,
            network_mappings=request.network_mappings,
            property_mappings=request.property_mappings,
            locale=self.options.locale,
            deployment_option="",
        )
        for w in result.warnings:
            log.warning("OVF Warning: %s", w)
        if result.errors:
            raise RemoteValidationError(result.errors)
        return result

    def _source_for(self, request: DeploymentRequest, item: FileItem) -> TransferSource:
        location = sibling_location(request.descriptor, item.path)
        if is_remote_location(request.descriptor):
            return RemoteUrlSource(location, self.http.session, timeout=self.options.http_timeout_s)
        return LocalFileSource(location)

    def _size_hint(self, request: DeploymentRequest, item: FileItem) -> Optional[int]:
        if item.size is not None:
            return int(item.size)
        if is_remote_location(request.descriptor):
            return None
        try:
            return os.stat(sibling_location(request.descriptor, item.path)).st_size
        except OSError:
            return None

    # ------------------------------------------------------------------ deploy

    def deploy(
        self,
        request: DeploymentRequest,
        on_transfer: Optional[TransferCallback] = None,
        on_percent: Optional[PercentCallback] = None,
        cancel: Optional[Cancellation] = None,
    ) -> DeployResult:
        opt = self.options
        log = Log.bind(self.logger, vm=request.vm_name)

        Log.step(log, f"Creating import spec from {request.descriptor}")
        spec = self.create_import_spec(request, log)
        check(cancel)

        lease = acquire(
            self.endpoint,
            spec.import_spec,
            request.folder,
            request.host,
            request.resource_pool,
            logger=self.logger,
        )
        with LeaseGuard(lease):
            log.info("Waiting for lease (timeout=%s)", "none" if opt.lease_timeout_s is None else f"{opt.lease_timeout_s:g}s")
            lease.await_ready(
                timeout_s=opt.lease_timeout_s,
                poll_interval_s=opt.poll_interval_s,
                max_poll_interval_s=opt.max_poll_interval_s,
                cancel=cancel,
            )

            def report(p: int) -> None:
                if lease.report_progress(p) and on_percent is not None:
                    on_percent(lease.last_percent)

            report(PREPARED_PERCENT)
            sent_total, files = self._upload_all(request, spec, lease, log, report, on_transfer, cancel)
            report(100)
            vm = lease.entity()
            lease.complete()

        Log.ok(log, f"Deployed {request.vm_name} ({len(files)} file(s), {U.human_bytes(sent_total)})")
        return DeployResult(vm=vm, warnings=list(spec.warnings), files=files, bytes_transferred=sent_total)

    def _upload_all(
        self,
        request: DeploymentRequest,
        spec: ImportSpecResult,
        lease: Lease,
        log: Any,
        report: Callable[[int], None],
        on_transfer: Optional[TransferCallback],
        cancel: Optional[Cancellation],
    ) -> Tuple[int, List[str]]:
        items = list(spec.file_items)
        if not items:
            return 0, []

        host_ip = self.options.upload_host or self.endpoint.host_address(request.host)
        bands = _bands([self._size_hint(request, it) for it in items])
        sent_total = 0
        files: List[str] = []

        for item, (start, width) in zip(items, bands):
            check(cancel)
            device_url = lease.device_url_for(item.device_id)
            url = substitute_host(device_url.url, host_ip)
            flog = log.bind(device=item.device_id)
            flog.info("Uploading %s (%s) via %s", item.path, U.human_bytes(item.size), item.method)

            dest = HttpDestination(
                url=url,
                session=self.http.session,
                method=item.method,
                headers=self.http.auth_headers({"Content-Type": STREAM_VMDK_CONTENT_TYPE}),
                expected_status=(200, 201),
                timeout=self.options.http_timeout_s,
            )

            def on_chunk(transferred: int, total: int, _item: FileItem = item, _s: Fraction = start, _w: Fraction = width) -> None:
                if on_transfer is not None:
                    on_transfer(_item, transferred, total)
                if total > 0:
                    report(band_percent(_s, _w, transferred, total))

            sent = transfer(self._source_for(request, item), dest, self.options.chunk_size, on_chunk, cancel=cancel)
            sent_total += sent
            files.append(item.path)
            report(band_percent(start, width, 1, 1))
            flog.debug("Uploaded %s (%d bytes)", item.path, sent)

        return sent_total, files


def deploy_ovf(
    logger: logging.Logger,
    endpoint: Any,
    http: VsphereHttpSession,
    request: DeploymentRequest,
    options: Optional[DeployOptions] = None,
    *,
    on_transfer: Optional[TransferCallback] = None,
    on_percent: Optional[PercentCallback] = None,
    cancel: Optional[Cancellation] = None,
) -> DeployResult:
    return OvfDeployer(logger, endpoint, http, options).deploy(
        request, on_transfer=on_transfer, on_percent=on_percent, cancel=cancel
    )
