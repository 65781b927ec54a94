# SPDX-License-Identifier: LGPL-3.0-or-later
from __future__ import annotations

import argparse
import signal
import sys
from unittest.mock import MagicMock, patch

import pytest

from fakes.fake_logger import FakeLogger
from ovfdeploy.cli import main as main_mod
from ovfdeploy.cli.args import parse_args_with_config
from ovfdeploy.core.cancel import Cancellation, check
from ovfdeploy.core.exceptions import InvalidParameterError, LeaseError
from ovfdeploy.orchestrator.models import DeployResult, DiskProvisioning, FileItem

CONN = ["--vcenter", "vc", "--vc-user", "admin", "--vc-password", "pw"]
EXISTS = CONN + ["ds-exists", "--datacenter", "d", "--datastore", "s", "x.iso"]


@pytest.mark.unit
class TestRunExitCodes:
    def test_validation_error_exit_code(self):
        assert main_mod.run(["--vcenter", "vc"]) == 2

    def test_error_code_propagates(self):
        def boom(args, conf, logger):
            raise LeaseError("lease entered error state")

        with patch.dict(main_mod.COMMAND_HANDLERS, {"ds-exists": boom}):
            assert main_mod.run(EXISTS) == 31

    def test_ctrl_c_is_130(self):
        def interrupted(args, conf, logger):
            raise KeyboardInterrupt()

        with patch.dict(main_mod.COMMAND_HANDLERS, {"ds-exists": interrupted}):
            assert main_mod.run(EXISTS) == 130

    def test_unexpected_error_is_1(self):
        def broken(args, conf, logger):
            raise RuntimeError("bug")

        with patch.dict(main_mod.COMMAND_HANDLERS, {"ds-exists": broken}):
            assert main_mod.run(EXISTS) == 1


@pytest.mark.unit
def test_deploy_command_builds_request(tmp_path):
    cfg = tmp_path / "c.yaml"
    cfg.write_text("network_mappings:\n  VM Network: lan\nproperty_mappings:\n  ip: 10.0.0.9\n", encoding="utf-8")
    log = FakeLogger()
    args, conf, _ = parse_args_with_config(
        ["--config", str(cfg)]
        + CONN
        + [
            "deploy", "--ovf", "/srv/app.ovf", "--name", "web-01", "--datacenter", "DC1",
            "--host", "esx01", "--datastore", "ds1", "--net", "Backup=bk",
            "--disk-provisioning", "eagerZeroedThick", "--no-progress",
        ],
        logger=log,
    )
    vc = MagicMock()
    vc.get_network.side_effect = lambda name, dc: f"net:{name}"
    client_cls = MagicMock()
    client_cls.from_config.return_value.__enter__.return_value = vc
    deployer_cls = MagicMock()
    deployer_cls.return_value.deploy.return_value = DeployResult(vm="vm-1", warnings=["w"], files=["d"], bytes_transferred=9)

    with patch.object(main_mod, "VMwareClient", client_cls), patch.object(main_mod, "OvfDeployer", deployer_cls):
        rc = main_mod.cmd_deploy(args, conf, log)

    assert rc == 0
    request = deployer_cls.return_value.deploy.call_args.args[0]
    assert request.vm_name == "web-01"
    assert request.disk_provisioning is DiskProvisioning.EAGER_ZEROED_THICK
    assert request.network_mappings == (("VM Network", "net:lan"), ("Backup", "net:bk"))
    assert request.property_mappings == (("ip", "10.0.0.9"),)
    options = deployer_cls.call_args.args[3]
    assert options.lease_timeout_s == 300.0


@pytest.mark.unit
def test_deploy_progress_one_reporter_per_file():
    log = FakeLogger()
    progress = main_mod.DeployProgress(log, main_mod.ProgressOptions(show_progress=False))
    a, b = FileItem("/vm/a", "a.vmdk"), FileItem("/vm/b", "b.vmdk")
    progress.on_transfer(a, 1, 2)
    first = progress.reporter
    progress.on_transfer(a, 2, 2)
    assert progress.reporter is first
    progress.on_transfer(b, 1, -1)
    assert progress.reporter is not first
    progress.finish()
    assert progress.reporter is None


@pytest.mark.unit
def test_ds_download_honours_chunk_size(tmp_path):
    log = FakeLogger()
    args, conf, _ = parse_args_with_config(
        CONN
        + ["--no-progress", "ds-download", "--datacenter", "DC1", "--datastore", "ds1", "--chunk-size", "4MiB"]
        + ["iso/seed.iso", str(tmp_path / "seed.iso")],
        logger=log,
    )
    client_cls = MagicMock()
    ds_cls = MagicMock()
    ds_cls.from_datastore.return_value.download.return_value = 10

    with patch.object(main_mod, "VMwareClient", client_cls), patch.object(main_mod, "DatastoreClient", ds_cls):
        assert main_mod.cmd_ds_download(args, conf, log) == 0

    path, local, chunk, _ = ds_cls.from_datastore.return_value.download.call_args.args
    assert (path, chunk) == ("iso/seed.iso", 4 * 1024 * 1024)


@pytest.mark.unit
def test_bad_chunk_size_is_invalid_parameter():
    args = argparse.Namespace(chunk_size="lots")
    with pytest.raises(InvalidParameterError):
        main_mod._chunk_size(args)


@pytest.mark.unit
@pytest.mark.skipif(sys.platform == "win32", reason="POSIX signals")
def test_sigterm_during_deploy_cancels():
    before = signal.getsignal(signal.SIGTERM)

    def deploy(request, on_transfer=None, cancel=None):
        signal.raise_signal(signal.SIGTERM)
        check(cancel)
        raise AssertionError("deploy should have been cancelled")

    deployer_cls = MagicMock()
    deployer_cls.return_value.deploy.side_effect = deploy
    argv = CONN + [
        "--no-progress", "deploy", "--ovf", "/srv/app.ovf", "--name", "web-01",
        "--datacenter", "DC1", "--host", "esx01", "--datastore", "ds1",
    ]

    with patch.object(main_mod, "VMwareClient", MagicMock()), patch.object(main_mod, "OvfDeployer", deployer_cls):
        assert main_mod.run(argv) == 130

    assert isinstance(deployer_cls.return_value.deploy.call_args.kwargs["cancel"], Cancellation)
    assert signal.getsignal(signal.SIGTERM) is before
