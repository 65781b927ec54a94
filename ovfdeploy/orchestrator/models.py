# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# ovfdeploy/orchestrator/models.py
"""
Value types passed between the deploy orchestrator, the NFC lease and the
transfer engine.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from ..core.exceptions import InvalidParameterError, MissingParameterError
from ..core.utils import U

DEFAULT_CHUNK_SIZE = 1024 * 1024  # matches the HTTP clients' 1 MiB I/O buffer


class DiskProvisioning(str, Enum):
    THIN = "thin"
    THICK = "thick"
    EAGER_ZEROED_THICK = "eagerZeroedThick"

    @classmethod
    def parse(cls, value: Union[str, "DiskProvisioning", None]) -> "DiskProvisioning":
        if value is None or value == "":
            return cls.THIN
        if isinstance(value, cls):
            return value
        for member in cls:
            if member.value.lower() == str(value).strip().lower():
                return member
        raise InvalidParameterError(
            f"unknown disk provisioning mode {value!r}",
            allowed=[m.value for m in cls],
        )


NetworkMappings = Tuple[Tuple[str, Any], ...]
PropertyMappings = Tuple[Tuple[str, str], ...]


def _normalize_network_mappings(raw: Union[Mapping[str, Any], Iterable[Tuple[str, Any]], None]) -> NetworkMappings:
    if not raw:
        return ()
    pairs = list(raw.items()) if isinstance(raw, Mapping) else [tuple(p) for p in raw]
    seen = set()
    for name, _ in pairs:
        if name in seen:
            raise InvalidParameterError(f"duplicate network mapping for {name!r}", network=name)
        seen.add(name)
    return tuple((str(n), t) for n, t in pairs)


def _normalize_property_mappings(raw: Union[Mapping[str, Any], Iterable[Tuple[str, Any]], None]) -> PropertyMappings:
    if not raw:
        return ()
    pairs = raw.items() if isinstance(raw, Mapping) else raw
    return tuple((str(k), "" if v is None else str(v)) for k, v in pairs)


_REQUIRED_FIELDS = (
    ("descriptor", "uri"),
    ("vm_name", "vmName"),
    ("folder", "vmFolder"),
    ("host", "host"),
    ("resource_pool", "resourcePool"),
    ("datastore", "datastore"),
)


@dataclass(frozen=True)
class DeploymentRequest:
    """
    Everything one deploy call needs.

    folder/host/resource_pool/datastore are managed-object references
    (pyVmomi objects in production, plain stand-ins in tests). The network
    mapping targets are network references too.
    """
    descriptor: str
    vm_name: str
    folder: Any
    host: Any
    resource_pool: Any
    datastore: Any
    disk_provisioning: DiskProvisioning = DiskProvisioning.THIN
    network_mappings: NetworkMappings = ()
    property_mappings: PropertyMappings = ()

    def __post_init__(self) -> None:
        for attr, public_name in _REQUIRED_FIELDS:
            value = getattr(self, attr)
            if value is None or (isinstance(value, str) and not value.strip()):
                raise MissingParameterError(public_name)

        object.__setattr__(self, "descriptor", str(self.descriptor))
        object.__setattr__(self, "disk_provisioning", DiskProvisioning.parse(self.disk_provisioning))
        object.__setattr__(self, "network_mappings", _normalize_network_mappings(self.network_mappings))
        object.__setattr__(self, "property_mappings", _normalize_property_mappings(self.property_mappings))


@dataclass(frozen=True)
class FileItem:
    device_id: str
    path: str
    size: Optional[int] = None
    create: bool = False

    @property
    def method(self) -> str:
        # vSphere: files the client creates are PUT, existing device backings are POSTed.
        return "PUT" if self.create else "POST"


@dataclass(frozen=True)
class ImportSpecResult:
    import_spec: Any
    warnings: Tuple[str, ...] = ()
    errors: Tuple[str, ...] = ()
    file_items: Tuple[FileItem, ...] = ()


@dataclass(frozen=True)
class DeviceUrl:
    import_key: str
    url: str
    key: str = ""


@dataclass(frozen=True)
class TransferProgress:
    transferred: int
    total: int = -1

    @property
    def known(self) -> bool:
        return self.total >= 0

    @property
    def percent(self) -> Optional[float]:
        if self.total <= 0:
            return None if self.total < 0 else 100.0
        return (self.transferred * 100.0) / self.total


@dataclass
class DeployResult:
    vm: Any
    warnings: List[str] = field(default_factory=list)
    files: List[str] = field(default_factory=list)
    bytes_transferred: int = 0


@dataclass(frozen=True)
class DeployOptions:
    chunk_size: int = DEFAULT_CHUNK_SIZE
    lease_timeout_s: Optional[float] = 300.0
    poll_interval_s: float = 0.5
    max_poll_interval_s: float = 5.0
    upload_host: Optional[str] = None
    http_timeout_s: Optional[float] = None
    locale: str = "US"

    def __post_init__(self) -> None:
        if int(self.chunk_size) < 1:
            raise InvalidParameterError(f"chunk_size must be >= 1, got {self.chunk_size}")
        if self.lease_timeout_s is not None and float(self.lease_timeout_s) <= 0:
            raise InvalidParameterError(f"lease_timeout_s must be > 0, got {self.lease_timeout_s}")
        if float(self.poll_interval_s) <= 0:
            raise InvalidParameterError(f"poll_interval_s must be > 0, got {self.poll_interval_s}")

    @classmethod
    def from_config(cls, conf: Dict[str, Any]) -> "DeployOptions":
        """
        Build options from a merged config/argparse mapping. Missing or None
        values keep the documented defaults.
        """
        kw: Dict[str, Any] = {}
        if conf.get("chunk_size") not in (None, ""):
            try:
                kw["chunk_size"] = U.human_to_bytes(conf["chunk_size"])
            except ValueError as e:
                raise InvalidParameterError(f"bad chunk_size: {e}") from e
        if "lease_timeout_s" in conf:
            t = conf.get("lease_timeout_s")
            kw["lease_timeout_s"] = None if t in (None, 0, "0", "none", "") else float(t)
        for name in ("poll_interval_s", "max_poll_interval_s", "http_timeout_s"):
            if conf.get(name) is not None:
                kw[name] = float(conf[name])
        if conf.get("upload_host"):
            kw["upload_host"] = str(conf["upload_host"])
        return cls(**kw)


@dataclass(frozen=True)
class LeaseInfo:
    """Snapshot of HttpNfcLease.info once the lease is ready."""
    entity: Any
    device_urls: Tuple[DeviceUrl, ...] = ()
