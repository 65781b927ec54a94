# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# ovfdeploy/vmware/http_session.py
"""
Authenticated HTTP session towards an ESXi host or vCenter.

The vSphere SOAP session cookie (vmware_soap_session=...) also authorises
the /folder datastore interface and the HttpNfcLease device URLs, so one
pooled requests.Session carries it for every data-plane call.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import requests
import requests.adapters
import urllib3

from ..core.exceptions import VMwareError


class VsphereHttpSession:
    """
    Notes:
      - Uses one requests Session for pooling; do not share an instance between
        concurrently running deployments that need different cookies.
      - `http_client` exists for tests; it must look like the `requests` module.
    """

    def __init__(
        self,
        logger: logging.Logger,
        host: str,
        port: int = 443,
        insecure: bool = False,
        timeout: Optional[float] = None,
        http_client: Optional[Any] = None,
    ) -> None:
        if not host:
            raise ValueError("Host cannot be empty")
        if not 1 <= port <= 65535:
            raise ValueError(f"Invalid port: {port}")
        if timeout is not None and timeout <= 0:
            raise ValueError(f"Invalid timeout: {timeout}")

        self.logger = logger
        self.host = host.strip()
        self.port = port
        self.insecure = insecure
        self.timeout = timeout

        self._cookie_header_value: Optional[str] = None
        self._session_pool: Optional[Any] = None
        self._http_client = http_client or requests

        if self.insecure:
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    @property
    def base_url(self) -> str:
        if self.port == 443:
            return f"https://{self.host}"
        return f"https://{self.host}:{self.port}"

    def set_session_cookie(self, cookie: str) -> None:
        """
        Set the session cookie from the pyvmomi connection.

        Accepts raw 'name="value"; Path=/; HttpOnly' or bare 'name=value' and
        keeps only the first cookie pair for the Cookie header.
        """
        if not cookie or not cookie.strip():
            raise ValueError("Cookie cannot be empty")
        first = cookie.strip().split(";", 1)[0].strip()
        if "=" not in first:
            raise ValueError(f"Cookie does not look like name=value: {cookie!r}")
        self._cookie_header_value = first

    def get_session_cookie(self) -> str:
        if not self._cookie_header_value:
            raise VMwareError("Session cookie not set. Call set_session_cookie() first.")
        return self._cookie_header_value

    def auth_headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {"Cookie": self.get_session_cookie()}
        if extra:
            headers.update(extra)
        return headers

    @property
    def session(self) -> Any:
        if self._session_pool is None:
            self._session_pool = self._create_session()
        return self._session_pool

    def _create_session(self) -> Any:
        session = self._http_client.Session()
        session.verify = not self.insecure

        # max_retries=0: a half-sent upload body cannot be replayed safely.
        adapter = self._http_client.adapters.HTTPAdapter(
            pool_connections=4,
            pool_maxsize=16,
            max_retries=0,
            pool_block=False,
        )
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        return session

    def close(self) -> None:
        if self._session_pool is not None:
            self._session_pool.close()
            self._session_pool = None
