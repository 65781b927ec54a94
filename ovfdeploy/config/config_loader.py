# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# ovfdeploy/config/config_loader.py
"""
YAML/JSON configuration loading.

Config files are plain mappings whose keys match CLI dest names
(`vcenter`, `chunk_size`, `lease_timeout_s`, `network_mappings`, ...).
Several files may be given; later files override earlier ones and nested
mappings are merged key by key.
"""

from __future__ import annotations

import argparse
import glob
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Sequence

import yaml

from ..core.exceptions import Fatal


class Config:
    @staticmethod
    def expand_configs(logger: logging.Logger, paths: Sequence[str]) -> List[Path]:
        """Expand `~`, env vars and globs; missing files are fatal."""
        out: List[Path] = []
        for raw in paths:
            p = os.path.expandvars(os.path.expanduser(str(raw)))
            matches = sorted(glob.glob(p)) if any(ch in p for ch in "*?[") else [p]
            if not matches:
                raise Fatal(2, f"Config glob matched nothing: {raw}")
            for m in matches:
                mp = Path(m)
                if not mp.is_file():
                    raise Fatal(2, f"Config file not found: {mp}")
                out.append(mp)
        logger.debug("Config files: %s", [str(p) for p in out])
        return out

    @staticmethod
    def load_file(logger: logging.Logger, path: Path) -> Dict[str, Any]:
        raw = Path(path).read_text(encoding="utf-8")
        try:
            if path.suffix.lower() == ".json":
                data = json.loads(raw)
            else:
                data = yaml.safe_load(raw)
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise Fatal(2, f"Invalid config {path}: {e}") from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise Fatal(2, f"Config {path} must be a mapping at top level, got {type(data).__name__}")
        logger.debug("Loaded config %s (%d keys)", path, len(data))
        return data

    @staticmethod
    def merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        out = dict(base)
        for k, v in override.items():
            if isinstance(v, dict) and isinstance(out.get(k), dict):
                out[k] = Config.merge(out[k], v)
            else:
                out[k] = v
        return out

    @staticmethod
    def load_many(logger: logging.Logger, paths: Sequence[Path]) -> Dict[str, Any]:
        conf: Dict[str, Any] = {}
        for p in paths:
            conf = Config.merge(conf, Config.load_file(logger, Path(p)))
        return conf

    @staticmethod
    def apply_as_defaults(logger: logging.Logger, parser: argparse.ArgumentParser, conf: Dict[str, Any]) -> None:
        """
        Push config values into argparse defaults so explicit CLI flags still win.

        Keys are normalised ("chunk-size" -> "chunk_size"). A subcommand only
        receives the keys its own options declare; everything else lands on
        the top-level parser so a subparser never overwrites a global flag.
        """
        normalized = {str(k).replace("-", "_"): v for k, v in conf.items()}
        parser.set_defaults(**normalized)
        for action in parser._actions:
            if isinstance(action, argparse._SubParsersAction):
                for sub in action.choices.values():
                    own = {a.dest for a in sub._actions}
                    sub.set_defaults(**{k: v for k, v in normalized.items() if k in own})
        logger.debug("Applied %d config keys as CLI defaults", len(normalized))
