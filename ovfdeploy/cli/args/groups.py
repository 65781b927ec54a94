# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
from __future__ import annotations

import argparse

from ...orchestrator.models import DiskProvisioning


def _add_global_config_logging(p: argparse.ArgumentParser) -> None:
    # ------------------------------------------------------------------
    # Global config/logging (two-phase parse relies on these)
    # ------------------------------------------------------------------
    from ... import __version__

    p.add_argument(
        "--config",
        action="append",
        default=[],
        help="YAML/JSON config file (repeatable; later overrides earlier).",
    )
    p.add_argument("--dump-config", action="store_true", help="Print merged config and exit.")
    p.add_argument("--version", action="version", version=__version__)
    p.add_argument("-v", "--verbose", action="count", default=0, help="Verbosity: -vv debug, -vvv trace")
    p.add_argument("-q", "--quiet", action="count", default=0, help="Less output: -q warnings, -qq errors")
    p.add_argument("--log-file", dest="log_file", default=None, help="Write logs to file.")
    p.add_argument("--json-logs", dest="json_logs", action="store_true", help="Emit NDJSON log records.")
    p.add_argument("--no-progress", dest="no_progress", action="store_true", help="Disable progress bars.")


def _add_vsphere_connection(p: argparse.ArgumentParser) -> None:
    # ------------------------------------------------------------------
    # vSphere connection
    # ------------------------------------------------------------------
    p.add_argument("--vcenter", default=None, help="vCenter/ESXi hostname or IP.")
    p.add_argument("--vc-user", dest="vc_user", default=None, help="vSphere username.")
    p.add_argument("--vc-password", dest="vc_password", default=None, help="vSphere password.")
    p.add_argument(
        "--vc-password-env",
        dest="vc_password_env",
        default=None,
        help="Read the vSphere password from this environment variable.",
    )
    p.add_argument("--vc-port", dest="vc_port", type=int, default=443, help="vSphere HTTPS port.")
    p.add_argument(
        "--vc-insecure",
        dest="vc_insecure",
        action="store_true",
        help="Skip TLS certificate verification (self-signed lab hosts only).",
    )
    p.add_argument(
        "--http-timeout",
        dest="http_timeout_s",
        type=float,
        default=None,
        help="Socket timeout in seconds for SOAP and HTTP calls.",
    )


def _add_datastore_location(p: argparse.ArgumentParser) -> None:
    p.add_argument("--datacenter", default=None, help="Datacenter name.")
    p.add_argument("--datastore", default=None, help="Datastore name.")


def _add_deploy_knobs(p: argparse.ArgumentParser) -> None:
    # ------------------------------------------------------------------
    # OVF deploy
    # ------------------------------------------------------------------
    p.add_argument("--ovf", default=None, help="OVF descriptor: local path or http(s) URL.")
    p.add_argument("--name", default=None, help="Name of the new VM.")
    _add_datastore_location(p)
    p.add_argument("--host", default=None, help="Target ESXi host (inventory name).")
    p.add_argument("--folder", default=None, help="VM folder path below the datacenter's vm folder.")
    p.add_argument("--resource-pool", dest="resource_pool", default=None, help="Resource pool (default: host's root pool).")
    p.add_argument(
        "--disk-provisioning",
        dest="disk_provisioning",
        default=DiskProvisioning.THIN.value,
        choices=[m.value for m in DiskProvisioning],
        help="Disk provisioning for the imported disks.",
    )
    p.add_argument(
        "--net",
        dest="net",
        action="append",
        default=[],
        metavar="SRC=DST",
        help="Map OVF network SRC to vSphere network DST (repeatable).",
    )
    p.add_argument(
        "--prop",
        dest="prop",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Set an OVF property (repeatable).",
    )
    p.add_argument("--chunk-size", dest="chunk_size", default=None, help="Upload chunk size, e.g. 1MiB, 8M.")
    p.add_argument(
        "--lease-timeout",
        dest="lease_timeout_s",
        default="300",
        help="Seconds to wait for the import lease; 'none' waits forever.",
    )
    p.add_argument(
        "--poll-interval",
        dest="poll_interval_s",
        type=float,
        default=None,
        help="Initial lease poll interval in seconds (doubles up to --max-poll-interval).",
    )
    p.add_argument("--max-poll-interval", dest="max_poll_interval_s", type=float, default=None)
    p.add_argument(
        "--upload-host",
        dest="upload_host",
        default=None,
        help="Host/IP substituted into lease device URLs (default: host's management IP).",
    )


def _add_subcommands(p: argparse.ArgumentParser) -> None:
    sub = p.add_subparsers(dest="cmd", metavar="COMMAND")

    dp = sub.add_parser("deploy", help="Deploy an OVF package as a new VM.")
    _add_deploy_knobs(dp)

    ex = sub.add_parser("ds-exists", help="Check whether a datastore file exists.")
    _add_datastore_location(ex)
    ex.add_argument("path", help="Path inside the datastore.")

    dl = sub.add_parser("ds-download", help="Download a datastore file.")
    _add_datastore_location(dl)
    dl.add_argument("path", help="Path inside the datastore.")
    dl.add_argument("local", help="Local destination file.")
    dl.add_argument("--chunk-size", dest="chunk_size", default=None, help="Download chunk size, e.g. 1MiB.")

    ul = sub.add_parser("ds-upload", help="Upload a local file to a datastore.")
    _add_datastore_location(ul)
    ul.add_argument("local", help="Local source file.")
    ul.add_argument("path", help="Path inside the datastore.")
    ul.add_argument("--chunk-size", dest="chunk_size", default=None, help="Upload chunk size, e.g. 1MiB.")
