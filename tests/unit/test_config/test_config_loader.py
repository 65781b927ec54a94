# SPDX-License-Identifier: LGPL-3.0-or-later
from __future__ import annotations

import argparse

import pytest

from fakes.fake_logger import FakeLogger
from ovfdeploy.config.config_loader import Config
from ovfdeploy.core.exceptions import Fatal


@pytest.fixture
def log():
    return FakeLogger()


@pytest.mark.unit
class TestLoading:
    def test_yaml_and_json_merge(self, tmp_path, log):
        a = tmp_path / "a.yaml"
        a.write_text("vcenter: vc1\nnetwork_mappings:\n  VM Network: lan\n  Backup: bk\n", encoding="utf-8")
        b = tmp_path / "b.json"
        b.write_text('{"vcenter": "vc2", "network_mappings": {"Backup": "bk2"}}', encoding="utf-8")

        conf = Config.load_many(log, [a, b])

        assert conf["vcenter"] == "vc2"
        assert conf["network_mappings"] == {"VM Network": "lan", "Backup": "bk2"}

    def test_empty_file_is_empty_mapping(self, tmp_path, log):
        p = tmp_path / "empty.yaml"
        p.write_text("", encoding="utf-8")
        assert Config.load_file(log, p) == {}

    def test_non_mapping_rejected(self, tmp_path, log):
        p = tmp_path / "list.yaml"
        p.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(Fatal):
            Config.load_file(log, p)

    def test_invalid_yaml(self, tmp_path, log):
        p = tmp_path / "bad.yaml"
        p.write_text("a: [1, 2\n", encoding="utf-8")
        with pytest.raises(Fatal) as ei:
            Config.load_file(log, p)
        assert ei.value.code == 2

    def test_expand_globs_sorted(self, tmp_path, log):
        for n in ("20-b.yaml", "10-a.yaml"):
            (tmp_path / n).write_text("x: 1\n", encoding="utf-8")
        got = Config.expand_configs(log, [str(tmp_path / "*.yaml")])
        assert [p.name for p in got] == ["10-a.yaml", "20-b.yaml"]

    def test_missing_file_fatal(self, tmp_path, log):
        with pytest.raises(Fatal):
            Config.expand_configs(log, [str(tmp_path / "nope.yaml")])
        with pytest.raises(Fatal):
            Config.expand_configs(log, [str(tmp_path / "*.none")])


@pytest.mark.unit
class TestApplyAsDefaults:
    def _parser(self):
        p = argparse.ArgumentParser()
        p.add_argument("--vcenter", default=None)
        sub = p.add_subparsers(dest="cmd")
        d = sub.add_parser("deploy")
        d.add_argument("--chunk-size", dest="chunk_size", default=None)
        return p

    def test_config_fills_defaults_and_cli_wins(self, log):
        p = self._parser()
        Config.apply_as_defaults(log, p, {"vcenter": "vc-from-config", "chunk-size": "4MiB"})

        args = p.parse_args(["deploy"])
        assert args.vcenter == "vc-from-config"
        assert args.chunk_size == "4MiB"

        args = p.parse_args(["--vcenter", "vc-cli", "deploy", "--chunk-size", "8M"])
        assert args.vcenter == "vc-cli"
        assert args.chunk_size == "8M"

    def test_subcommand_does_not_override_global_flag(self, log):
        p = self._parser()
        Config.apply_as_defaults(log, p, {"vcenter": "vc-from-config"})
        args = p.parse_args(["--vcenter", "vc-cli", "deploy"])
        assert args.vcenter == "vc-cli"
