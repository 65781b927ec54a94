# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
from __future__ import annotations

import argparse
from typing import Any, Dict, Iterable, List, Mapping, Tuple

from ...core.exceptions import Fatal, InvalidParameterError, MissingParameterError

COMMANDS = ("deploy", "ds-exists", "ds-download", "ds-upload")

_REQUIRED_BY_CMD = {
    "deploy": ("ovf", "name", "datacenter", "host", "datastore"),
    "ds-exists": ("datacenter", "datastore"),
    "ds-download": ("datacenter", "datastore"),
    "ds-upload": ("datacenter", "datastore"),
}


def _require(v: Any) -> bool:
    return v is not None and (not isinstance(v, str) or bool(v.strip()))


def parse_pairs(items: Iterable[str], flag: str) -> List[Tuple[str, str]]:
    """["a=b", "c=d"] -> [("a", "b"), ("c", "d")]; the value may contain '='."""
    out: List[Tuple[str, str]] = []
    for raw in items or ():
        key, sep, value = str(raw).partition("=")
        if not sep or not key.strip():
            raise InvalidParameterError(f"{flag} expects KEY=VALUE, got {raw!r}", flag=flag)
        out.append((key.strip(), value))
    return out


def merged_pairs(cli_items: Iterable[str], conf_value: Any, flag: str) -> List[Tuple[str, str]]:
    """Config mapping first, CLI pairs override by key; order of first appearance is kept."""
    merged: Dict[str, str] = {}
    if isinstance(conf_value, Mapping):
        for k, v in conf_value.items():
            merged[str(k)] = "" if v is None else str(v)
    elif conf_value:
        raise InvalidParameterError(f"config value for {flag} must be a mapping", flag=flag)
    for k, v in parse_pairs(cli_items, flag):
        merged[k] = v
    return list(merged.items())


def _validate_vsphere_identity(args: argparse.Namespace) -> None:
    for dest, flag in (("vcenter", "--vcenter"), ("vc_user", "--vc-user")):
        if not _require(getattr(args, dest, None)):
            raise MissingParameterError(flag)
    if not (_require(getattr(args, "vc_password", None)) or _require(getattr(args, "vc_password_env", None))):
        raise MissingParameterError("--vc-password/--vc-password-env")


def validate_args(args: argparse.Namespace) -> None:
    cmd = getattr(args, "cmd", None)
    if cmd not in COMMANDS:
        raise Fatal(2, f"missing or unknown command {cmd!r}; expected one of: {', '.join(COMMANDS)}")

    _validate_vsphere_identity(args)

    for dest in _REQUIRED_BY_CMD[cmd]:
        if not _require(getattr(args, dest, None)):
            raise MissingParameterError("--" + dest.replace("_", "-"))

    if cmd == "deploy":
        parse_pairs(getattr(args, "net", None) or [], "--net")
        parse_pairs(getattr(args, "prop", None) or [], "--prop")
