# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
from __future__ import annotations

import argparse
import sys
from typing import Any, Dict, Optional, Sequence, Tuple

from ...config.config_loader import Config
from ...core.logger import Log, c
from ...core.utils import U
from .groups import _add_global_config_logging, _add_subcommands, _add_vsphere_connection
from .validators import validate_args

EPILOG = """\
Config example (YAML, keys are option dest names):

  vcenter: vcenter.example.com
  vc_user: administrator@vsphere.local
  vc_password_env: VC_PASSWORD
  vc_insecure: true
  datacenter: DC1
  datastore: datastore1
  chunk_size: 4MiB
  lease_timeout_s: 600
  network_mappings:
    "VM Network": "prod-vlan-20"
"""


class HelpFormatter(argparse.RawDescriptionHelpFormatter, argparse.ArgumentDefaultsHelpFormatter):
    pass


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="ovfdeploy",
        description=c("ovfdeploy: deploy OVF appliances to vSphere over HttpNfcLease", "green", ["bold"]),
        formatter_class=HelpFormatter,
        epilog=c(EPILOG, "cyan"),
    )
    _add_global_config_logging(p)
    _add_vsphere_connection(p)
    _add_subcommands(p)
    return p


def _build_preparser() -> argparse.ArgumentParser:
    pre = argparse.ArgumentParser(add_help=False)
    pre.add_argument("--config", action="append", default=[])
    pre.add_argument("-v", "--verbose", action="count", default=0)
    pre.add_argument("-q", "--quiet", action="count", default=0)
    pre.add_argument("--log-file", dest="log_file", default=None)
    pre.add_argument("--json-logs", dest="json_logs", action="store_true")
    pre.add_argument("--dump-config", action="store_true")
    return pre


def _load_merged_config(logger: Any, cfgs: Sequence[str]) -> Dict[str, Any]:
    if not cfgs:
        return {}
    expanded = Config.expand_configs(logger, list(cfgs))
    return Config.load_many(logger, expanded)


def parse_args_with_config(
    argv: Optional[Sequence[str]] = None,
    logger: Any = None,
) -> Tuple[argparse.Namespace, Dict[str, Any], Any]:
    """
    Phase 0: parse only the flags needed to locate config and set up logging
    Phase 1: load + merge config files
    Phase 2: apply config as parser defaults
    Phase 3: full parse (explicit flags win)
    Phase 4: validate
    """
    if argv is None:
        argv = sys.argv[1:]
    argv = list(argv)

    parser = build_parser()

    pre = _build_preparser()
    args0, _rest = pre.parse_known_args(argv)

    if logger is None:
        logger = Log.setup(
            args0.verbose,
            args0.log_file,
            quiet=args0.quiet,
            json_logs=args0.json_logs,
        )

    conf = _load_merged_config(logger, args0.config or [])

    if args0.dump_config:
        print(U.json_dump(conf))
        raise SystemExit(0)

    Config.apply_as_defaults(logger, parser, conf)

    args = parser.parse_args(argv)
    validate_args(args)
    return args, conf, logger
