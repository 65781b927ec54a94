# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# ovfdeploy/core/utils.py
from __future__ import annotations

import json
from typing import Any, Optional


class U:
    @staticmethod
    def json_dump(obj: Any) -> str:
        try:
            return json.dumps(obj, indent=2, sort_keys=True, default=str)
        except Exception:
            return repr(obj)

    @staticmethod
    def human_bytes(n: Optional[int]) -> str:
        if n is None or n < 0:
            return "unknown"
        x = float(n)
        for unit in ["B", "KiB", "MiB", "GiB", "TiB", "PiB"]:
            if x < 1024 or unit == "PiB":
                return f"{x:.2f} {unit}" if unit != "B" else f"{int(x)} {unit}"
            x /= 1024
        return f"{n} B"

    @staticmethod
    def human_to_bytes(s: Any) -> int:
        """
        Parse human sizes:
          - "10G", "10GiB", "10GB"
          - "512M", "512MiB"
          - "1024" (bytes)
        Integers pass through unchanged.
        """
        if isinstance(s, int):
            return s
        raw = str(s).strip()
        if not raw:
            raise ValueError("empty size")

        t = raw.upper().replace(" ", "")
        t = t.replace("KIB", "KI").replace("MIB", "MI").replace("GIB", "GI").replace("TIB", "TI")
        t = t.replace("KB", "K").replace("MB", "M").replace("GB", "G").replace("TB", "T")
        t = t.rstrip("B")

        multipliers = {
            "": 1,
            "K": 1024,
            "KI": 1024,
            "M": 1024**2,
            "MI": 1024**2,
            "G": 1024**3,
            "GI": 1024**3,
            "T": 1024**4,
            "TI": 1024**4,
        }

        num = ""
        suf = ""
        for i, ch in enumerate(t):
            if ch.isdigit() or ch == ".":
                num += ch
            else:
                suf = t[i:]
                break

        if not num:
            raise ValueError(f"no number in size {raw!r}")
        if suf not in multipliers:
            raise ValueError(f"unknown size suffix: {suf!r} in {raw!r}")

        return int(float(num) * multipliers[suf])
