# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# ovfdeploy/cli/args/__init__.py
"""Argument parsing for the ovfdeploy CLI."""
from __future__ import annotations

from .parser import build_parser, parse_args_with_config
from .validators import COMMANDS, merged_pairs, parse_pairs, validate_args

__all__ = ["COMMANDS", "build_parser", "merged_pairs", "parse_args_with_config", "parse_pairs", "validate_args"]
