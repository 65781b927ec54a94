# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# ovfdeploy/vmware/client.py
"""
vSphere/vCenter connection and inventory lookups by name.

The connection also seeds the data-plane HTTP session with the SOAP session
cookie, so datastore and NFC uploads ride on the same login.
"""

from __future__ import annotations

import logging
import os
import socket
import ssl
from typing import Any, Dict, List, Optional

from pyVim.connect import Disconnect, SmartConnect  # type: ignore
from pyVmomi import vim  # type: ignore

from ..core.exceptions import MissingParameterError, VMwareError
from .endpoint import PyVmomiEndpoint
from .http_session import VsphereHttpSession


def resolve_password(cfg: Dict[str, Any]) -> str:
    """vc_password wins; otherwise read the variable named by vc_password_env."""
    pw = cfg.get("vc_password")
    if pw:
        return str(pw)
    env_name = cfg.get("vc_password_env")
    if env_name:
        val = os.environ.get(str(env_name))
        if val:
            return val
        raise VMwareError(f"environment variable {env_name} is empty or unset", env=str(env_name))
    raise MissingParameterError("vc_password")


class VMwareClient:
    def __init__(
        self,
        logger: logging.Logger,
        host: str,
        user: str,
        password: str,
        *,
        port: int = 443,
        insecure: bool = False,
        timeout: Optional[float] = None,
    ) -> None:
        self.logger = logger
        self.host = (host or "").strip()
        self.user = (user or "").strip()
        self.password = password or ""
        self.port = int(port)
        self.insecure = bool(insecure)
        self.timeout = timeout

        self.si: Any = None
        self.http = VsphereHttpSession(logger, self.host or "unset", self.port, self.insecure, timeout)

    @classmethod
    def from_config(cls, logger: logging.Logger, cfg: Dict[str, Any]) -> "VMwareClient":
        host = cfg.get("vcenter")
        if not host:
            raise MissingParameterError("vcenter")
        user = cfg.get("vc_user")
        if not user:
            raise MissingParameterError("vc_user")
        timeout = cfg.get("http_timeout_s")
        return cls(
            logger,
            str(host),
            str(user),
            resolve_password(cfg),
            port=int(cfg.get("vc_port") or 443),
            insecure=bool(cfg.get("vc_insecure", False)),
            timeout=float(timeout) if timeout else None,
        )

    def __enter__(self) -> "VMwareClient":
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.disconnect()
        return False

    # Connection

    def _ssl_context(self) -> ssl.SSLContext:
        if self.insecure:
            self.logger.warning("TLS certificate verification is DISABLED (--vc-insecure).")
            ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
            ctx.check_hostname = False
            ctx.verify_mode = ssl.CERT_NONE
            return ctx
        return ssl.create_default_context()

    def connect(self) -> None:
        ctx = self._ssl_context()
        old_timeout = socket.getdefaulttimeout()
        try:
            if self.timeout is not None:
                socket.setdefaulttimeout(self.timeout)
            self.si = SmartConnect(
                host=self.host,
                user=self.user,
                pwd=self.password,
                port=self.port,
                sslContext=ctx,
            )
        except Exception as e:
            self.si = None
            raise VMwareError(f"Failed to connect to vSphere: {e}", cause=e, host=self.host) from e
        finally:
            socket.setdefaulttimeout(old_timeout)

        cookie = getattr(getattr(self.si, "_stub", None), "cookie", None)
        if not cookie:
            raise VMwareError("vSphere login returned no session cookie", host=self.host)
        self.http.set_session_cookie(str(cookie))
        self.logger.info("Connected to vSphere: %s:%s", self.host, self.port)

    def disconnect(self) -> None:
        try:
            if self.si is not None:
                Disconnect(self.si)
        except Exception as e:
            self.logger.error("Error during disconnect: %s", e)
        finally:
            self.si = None
            self.http.close()

    def endpoint(self) -> PyVmomiEndpoint:
        return PyVmomiEndpoint(self._require_si(), logger=self.logger)

    def _require_si(self) -> Any:
        if self.si is None:
            raise VMwareError("Not connected")
        return self.si

    def _content(self) -> Any:
        try:
            return self._require_si().RetrieveContent()
        except VMwareError:
            raise
        except Exception as e:
            raise VMwareError(f"Failed to retrieve content: {e}", cause=e) from e

    # Inventory

    def _find_all(self, vimtype: Any, root: Any = None) -> List[Any]:
        content = self._content()
        view = content.viewManager.CreateContainerView(root or content.rootFolder, [vimtype], True)
        try:
            return list(view.view)
        finally:
            try:
                view.Destroy()
            except Exception:
                pass

    def _find_by_name(self, vimtype: Any, name: str, kind: str, root: Any = None) -> Any:
        target = (name or "").strip()
        for obj in self._find_all(vimtype, root):
            if str(getattr(obj, "name", "")).strip() == target:
                return obj
        raise VMwareError(f"{kind} not found: {target}", kind=kind, name=target)

    def get_datacenter(self, name: str) -> Any:
        return self._find_by_name(vim.Datacenter, name, "datacenter")

    def get_host(self, name: str, dc: Any = None) -> Any:
        return self._find_by_name(vim.HostSystem, name, "host", root=dc)

    def get_datastore(self, name: str, dc: Any = None) -> Any:
        return self._find_by_name(vim.Datastore, name, "datastore", root=dc)

    def get_network(self, name: str, dc: Any = None) -> Any:
        return self._find_by_name(vim.Network, name, "network", root=dc)

    def get_resource_pool(self, name: Optional[str], host: Any, dc: Any = None) -> Any:
        """Named pool, or the root pool of the host's compute resource."""
        if name:
            return self._find_by_name(vim.ResourcePool, name, "resource pool", root=dc)
        try:
            return host.parent.resourcePool
        except AttributeError as e:
            raise VMwareError("host has no compute resource pool", cause=e) from e

    def get_folder(self, path: Optional[str], dc: Any) -> Any:
        """
        VM folder by slash-separated path below the datacenter's vmFolder.
        Empty path means the vmFolder itself.
        """
        folder = dc.vmFolder
        for part in [p for p in (path or "").strip("/").split("/") if p]:
            child = None
            for entity in getattr(folder, "childEntity", None) or []:
                if isinstance(entity, vim.Folder) and entity.name == part:
                    child = entity
                    break
            if child is None:
                raise VMwareError(f"folder not found: {path}", kind="folder", name=str(path))
            folder = child
        return folder
