# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# ovfdeploy/cli/main.py
from __future__ import annotations

import argparse
import logging
import sys
import traceback
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Sequence

from ..core.cancel import Cancellation, cancel_on_signals
from ..core.exceptions import InvalidParameterError, OvfDeployError, format_exception_for_cli
from ..core.logger import Log
from ..core.utils import U
from ..orchestrator.deployer import OvfDeployer
from ..orchestrator.models import DEFAULT_CHUNK_SIZE, DeploymentRequest, DeployOptions, FileItem
from ..vmware.client import VMwareClient
from ..vmware.datastore import DatastoreClient
from ..vmware.progress_reporters import (
    ProgressOptions,
    ProgressReporter,
    create_progress_reporter,
    reporter_callback,
)
from .args import merged_pairs, parse_args_with_config


class DeployProgress:
    """One reporter per uploaded file, driven by the deployer's transfer callback."""

    def __init__(self, logger: logging.Logger, options: ProgressOptions) -> None:
        self.logger = logger
        self.options = options
        self.current: Optional[FileItem] = None
        self.reporter: Optional[ProgressReporter] = None
        self._cb: Optional[Callable[[int, int], None]] = None

    def on_transfer(self, item: FileItem, transferred: int, total: int) -> None:
        if item is not self.current:
            self.finish()
            self.current = item
            self.reporter = create_progress_reporter(self.options, item.path, self.logger)
            self.reporter.start(f"Uploading {item.path}", total if total >= 0 else None)
            self._cb = reporter_callback(self.reporter)
        if self._cb is not None:
            self._cb(transferred, total)

    def finish(self) -> None:
        if self.reporter is not None:
            self.reporter.finish()
        self.reporter = None
        self._cb = None


def _progress_options(args: argparse.Namespace) -> ProgressOptions:
    return ProgressOptions(show_progress=not getattr(args, "no_progress", False))


def _chunk_size(args: argparse.Namespace) -> int:
    raw = getattr(args, "chunk_size", None)
    if raw in (None, ""):
        return DEFAULT_CHUNK_SIZE
    try:
        size = U.human_to_bytes(raw)
    except ValueError as e:
        raise InvalidParameterError(f"bad --chunk-size: {e}") from e
    if size < 1:
        raise InvalidParameterError(f"--chunk-size must be >= 1, got {raw!r}")
    return size


def cmd_deploy(args: argparse.Namespace, conf: Dict[str, Any], logger: logging.Logger) -> int:
    cfg = vars(args)
    options = DeployOptions.from_config(cfg)
    nets = merged_pairs(args.net, conf.get("network_mappings"), "--net")
    props = merged_pairs(args.prop, conf.get("property_mappings"), "--prop")
    Log.banner(logger, f"Deploying {args.name}")

    with VMwareClient.from_config(logger, cfg) as vc:
        Log.step(logger, "Resolving inventory", datacenter=args.datacenter, host=args.host)
        dc = vc.get_datacenter(args.datacenter)
        host = vc.get_host(args.host, dc)
        request = DeploymentRequest(
            descriptor=args.ovf,
            vm_name=args.name,
            folder=vc.get_folder(args.folder, dc),
            host=host,
            resource_pool=vc.get_resource_pool(args.resource_pool, host, dc),
            datastore=vc.get_datastore(args.datastore, dc),
            disk_provisioning=args.disk_provisioning,
            network_mappings=[(src, vc.get_network(dst, dc)) for src, dst in nets],
            property_mappings=props,
        )

        progress = DeployProgress(logger, _progress_options(args))
        try:
            with cancel_on_signals(Cancellation()) as cancel:
                result = OvfDeployer(logger, vc.endpoint(), vc.http, options).deploy(
                    request,
                    on_transfer=progress.on_transfer,
                    cancel=cancel,
                )
        finally:
            progress.finish()

    for w in result.warnings:
        Log.warn(logger, f"OVF warning: {w}")
    Log.ok(logger, f"VM {args.name} created ({U.human_bytes(result.bytes_transferred)} uploaded)")
    return 0


def _datastore_client(vc: VMwareClient, args: argparse.Namespace, logger: logging.Logger) -> DatastoreClient:
    dc = vc.get_datacenter(args.datacenter)
    return DatastoreClient.from_datastore(logger, vc.http, vc.get_datastore(args.datastore, dc))


def cmd_ds_exists(args: argparse.Namespace, conf: Dict[str, Any], logger: logging.Logger) -> int:
    with VMwareClient.from_config(logger, vars(args)) as vc:
        found = _datastore_client(vc, args, logger).exists(args.path)
    print("true" if found else "false")
    return 0 if found else 1


def _single_transfer(args: argparse.Namespace, logger: logging.Logger, label: str, run: Callable[..., int]) -> int:
    reporter = create_progress_reporter(_progress_options(args), label, logger)
    reporter.start(label, None)
    try:
        n = run(on_progress=reporter_callback(reporter))
    finally:
        reporter.finish()
    Log.ok(logger, f"{label}: {U.human_bytes(n)}")
    return 0


def cmd_ds_download(args: argparse.Namespace, conf: Dict[str, Any], logger: logging.Logger) -> int:
    chunk = _chunk_size(args)
    with VMwareClient.from_config(logger, vars(args)) as vc:
        ds = _datastore_client(vc, args, logger)
        return _single_transfer(
            args,
            logger,
            f"Downloading {args.path}",
            lambda on_progress: ds.download(args.path, Path(args.local), chunk, on_progress),
        )


def cmd_ds_upload(args: argparse.Namespace, conf: Dict[str, Any], logger: logging.Logger) -> int:
    chunk = _chunk_size(args)
    with VMwareClient.from_config(logger, vars(args)) as vc:
        ds = _datastore_client(vc, args, logger)
        return _single_transfer(
            args,
            logger,
            f"Uploading {args.local}",
            lambda on_progress: ds.upload(args.path, Path(args.local), chunk, on_progress),
        )


COMMAND_HANDLERS: Dict[str, Callable[[argparse.Namespace, Dict[str, Any], logging.Logger], int]] = {
    "deploy": cmd_deploy,
    "ds-exists": cmd_ds_exists,
    "ds-download": cmd_ds_download,
    "ds-upload": cmd_ds_upload,
}


def _print_stderr(msg: str) -> None:
    print(msg, file=sys.stderr)


def run(argv: Optional[Sequence[str]] = None) -> int:
    logger: Any = None
    verbose = 0

    # Phase 1: parse (config and validation errors surface here)
    try:
        args, conf, logger = parse_args_with_config(argv)
        verbose = int(getattr(args, "verbose", 0) or 0)
    except OvfDeployError as e:
        msg = format_exception_for_cli(e)
        if logger is None:
            _print_stderr(f"💥 ERROR    {msg}")
        else:
            Log.fail(logger, msg)
        return e.code
    except KeyboardInterrupt:
        _print_stderr("Interrupted by user (Ctrl+C).")
        return 130

    # Phase 2: run the command
    try:
        return COMMAND_HANDLERS[args.cmd](args, conf, logger)
    except OvfDeployError as e:
        Log.fail(logger, format_exception_for_cli(e, verbose=verbose))
        return e.code
    except KeyboardInterrupt:
        logger.warning("Interrupted by user (Ctrl+C).")
        return 130
    except OSError as e:
        Log.fail(logger, f"{type(e).__name__}: {e}")
        return 1
    except Exception as e:
        Log.fail(logger, f"UNHANDLED {type(e).__name__}: {e}")
        logger.debug(traceback.format_exc())
        return 1


def main() -> None:
    raise SystemExit(run())


if __name__ == "__main__":
    main()
