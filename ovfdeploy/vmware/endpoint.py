# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# ovfdeploy/vmware/endpoint.py
"""
The vSphere calls an OVF import needs, behind one small interface.

The deployer and the lease only ever talk to a VimEndpoint, so tests can swap
in a scripted double and the pyVmomi specifics stay in this file.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Iterable, List, Optional, Sequence, Tuple

from pyVmomi import vim  # type: ignore

from ..core.exceptions import VMwareError
from ..orchestrator.models import DeviceUrl, DiskProvisioning, FileItem, ImportSpecResult, LeaseInfo


class VimEndpoint(ABC):
    @abstractmethod
    def create_import_spec(
        self,
        descriptor: str,
        resource_pool: Any,
        datastore: Any,
        *,
        entity_name: str,
        host: Any,
        disk_provisioning: DiskProvisioning = DiskProvisioning.THIN,
        network_mappings: Sequence[Tuple[str, Any]] = (),
        property_mappings: Sequence[Tuple[str, str]] = (),
        locale: str = "US",
        deployment_option: str = "",
    ) -> ImportSpecResult:
        ...

    @abstractmethod
    def import_vapp(self, resource_pool: Any, spec: Any, folder: Any, host: Any) -> Any:
        ...

    @abstractmethod
    def lease_state(self, lease: Any) -> str:
        ...

    @abstractmethod
    def lease_error(self, lease: Any) -> Any:
        ...

    @abstractmethod
    def lease_info(self, lease: Any) -> LeaseInfo:
        ...

    @abstractmethod
    def lease_progress(self, lease: Any, percent: int) -> None:
        ...

    @abstractmethod
    def lease_complete(self, lease: Any) -> None:
        ...

    @abstractmethod
    def lease_abort(self, lease: Any, fault: Any = None) -> None:
        ...

    @abstractmethod
    def host_address(self, host: Any) -> str:
        ...


def _fault_messages(faults: Optional[Iterable[Any]]) -> Tuple[str, ...]:
    out: List[str] = []
    for f in faults or ():
        msg = getattr(f, "localizedMessage", None) or getattr(f, "msg", None) or str(f)
        out.append(str(msg))
    return tuple(out)


class PyVmomiEndpoint(VimEndpoint):
    """VimEndpoint over a connected pyVmomi ServiceInstance."""

    def __init__(self, service_instance: Any, logger: Optional[logging.Logger] = None) -> None:
        if service_instance is None:
            raise VMwareError("Not connected")
        self.si = service_instance
        self.logger = logger or logging.getLogger("ovfdeploy.endpoint")

    @property
    def ovf_manager(self) -> Any:
        try:
            return self.si.content.ovfManager
        except Exception as e:
            raise VMwareError(f"OvfManager unavailable: {e}", cause=e) from e

    def create_import_spec(
        self,
        descriptor: str,
        resource_pool: Any,
        datastore: Any,
        *,
        entity_name: str,
        host: Any,
        disk_provisioning: DiskProvisioning = DiskProvisioning.THIN,
        network_mappings: Sequence[Tuple[str, Any]] = (),
        property_mappings: Sequence[Tuple[str, str]] = (),
        locale: str = "US",
        deployment_option: str = "",
    ) -> ImportSpecResult:
        params = vim.OvfManager.CreateImportSpecParams(
            locale=locale,
            deploymentOption=deployment_option,
            entityName=entity_name,
            hostSystem=host,
            diskProvisioning=DiskProvisioning.parse(disk_provisioning).value,
            networkMapping=[vim.OvfManager.NetworkMapping(name=n, network=net) for n, net in network_mappings],
            propertyMapping=[vim.KeyValue(key=k, value=v) for k, v in property_mappings],
        )
        self.logger.debug("CreateImportSpec entity=%s provisioning=%s", entity_name, params.diskProvisioning)
        result = self.ovf_manager.CreateImportSpec(descriptor, resource_pool, datastore, params)

        items = tuple(
            FileItem(
                device_id=str(fi.deviceId),
                path=str(fi.path),
                size=int(fi.size) if getattr(fi, "size", None) is not None else None,
                create=bool(getattr(fi, "create", False)),
            )
            for fi in (getattr(result, "fileItem", None) or ())
        )
        return ImportSpecResult(
            import_spec=result.importSpec,
            warnings=_fault_messages(getattr(result, "warning", None)),
            errors=_fault_messages(getattr(result, "error", None)),
            file_items=items,
        )

    def import_vapp(self, resource_pool: Any, spec: Any, folder: Any, host: Any) -> Any:
        return resource_pool.ImportVApp(spec=spec, folder=folder, host=host)

    def lease_state(self, lease: Any) -> str:
        return str(lease.state)

    def lease_error(self, lease: Any) -> Any:
        return lease.error

    def lease_info(self, lease: Any) -> LeaseInfo:
        info = lease.info
        urls = tuple(
            DeviceUrl(import_key=str(d.importKey or ""), url=str(d.url), key=str(d.key or ""))
            for d in (info.deviceUrl or ())
        )
        return LeaseInfo(entity=info.entity, device_urls=urls)

    def lease_progress(self, lease: Any, percent: int) -> None:
        lease.HttpNfcLeaseProgress(percent=int(percent))

    def lease_complete(self, lease: Any) -> None:
        lease.HttpNfcLeaseComplete()

    def lease_abort(self, lease: Any, fault: Any = None) -> None:
        if fault is None:
            lease.HttpNfcLeaseAbort()
        else:
            lease.HttpNfcLeaseAbort(fault=fault)

    def host_address(self, host: Any) -> str:
        """Management IP of the first vmknic; the host name when none is configured."""
        try:
            vnics = host.config.network.vnic or []
            if vnics:
                ip = vnics[0].spec.ip.ipAddress
                if ip:
                    return str(ip)
        except AttributeError:
            pass
        name = getattr(host, "name", None)
        if name:
            return str(name)
        raise VMwareError("cannot determine host management address")
