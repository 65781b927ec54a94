# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
"""
Shared utility functions for VMware operations.

Provides common helpers to avoid duplication across VMware modules.
"""
from __future__ import annotations

import os
import sys
from typing import Any, Optional
from urllib.parse import quote, urlsplit
from urllib.request import url2pathname

from ..core.exceptions import InvalidParameterError


def is_tty(stream: Any = None) -> bool:
    """
    Check if the specified stream (or stdout by default) is a TTY.
    """
    try:
        if stream is None:
            stream = sys.stdout
        return stream.isatty()
    except (AttributeError, ValueError):
        return False


def create_console() -> Optional[Any]:
    """
    Create a Rich Console object for formatted output.

    Returns None when not running in a TTY.
    """
    if not is_tty():
        return None

    from rich.console import Console

    return Console(stderr=False)


REMOTE_SCHEMES = ("http", "https")


def is_remote_location(location: str) -> bool:
    """
    True for http:// and https:// locations.

        >>> is_remote_location("https://depot.example.com/appliance.ovf")
        True
        >>> is_remote_location("file:///srv/ovf/appliance.ovf")
        False
    """
    return urlsplit(str(location)).scheme.lower() in REMOTE_SCHEMES


def local_location(location: str) -> str:
    """
    Filesystem path for a local location: file:// URIs are converted, plain
    paths (Windows drive letters included) pass through. Any other URI scheme
    raises InvalidParameterError.
    """
    parts = urlsplit(str(location))
    scheme = parts.scheme.lower()
    if scheme == "file":
        return url2pathname(parts.path)
    if len(scheme) > 1:
        raise InvalidParameterError(f"unsupported location scheme {parts.scheme!r}: {location}", location=str(location))
    return os.path.expanduser(str(location))


def sibling_location(descriptor: str, relative_path: str) -> str:
    """
    Resolve a file referenced by an OVF descriptor relative to the descriptor itself.

    Remote descriptors keep everything up to the last "/" and append the
    relative path; local descriptors resolve against their directory.

        >>> sibling_location("http://h/ovf/app.ovf", "disk-0.vmdk")
        'http://h/ovf/disk-0.vmdk'
    """
    if is_remote_location(descriptor):
        base = str(descriptor).rsplit("/", 1)[0]
        return f"{base}/{relative_path}"
    base_dir = os.path.dirname(os.path.abspath(local_location(descriptor)))
    return os.path.join(base_dir, os.path.expanduser(relative_path))


def substitute_host(url_template: str, host_address: str) -> str:
    """
    Replace the "*" placeholder vSphere puts in HttpNfcLease device URLs.

    The result is escaped the way the upload client expects, leaving the
    URL's own reserved characters alone.
    """
    url = str(url_template).replace("*", host_address)
    return quote(url, safe=":/?&=%@[]!$'()+,;#~")
