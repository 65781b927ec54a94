# SPDX-License-Identifier: LGPL-3.0-or-later
from __future__ import annotations

import pytest

from ovfdeploy.core.utils import U


@pytest.mark.unit
class TestHumanSizes:
    @pytest.mark.parametrize(
        "raw,expected",
        [("1024", 1024), ("4MiB", 4 * 1024**2), ("8M", 8 * 1024**2), ("1 GiB", 1024**3), ("512k", 512 * 1024), (77, 77)],
    )
    def test_human_to_bytes(self, raw, expected):
        assert U.human_to_bytes(raw) == expected

    @pytest.mark.parametrize("raw", ["", "MiB", "4XB"])
    def test_human_to_bytes_rejects(self, raw):
        with pytest.raises(ValueError):
            U.human_to_bytes(raw)

    def test_human_bytes(self):
        assert U.human_bytes(None) == "unknown"
        assert U.human_bytes(-1) == "unknown"
        assert U.human_bytes(512) == "512 B"
        assert U.human_bytes(1024 * 1024) == "1.00 MiB"


@pytest.mark.unit
def test_json_dump_is_stable():
    assert U.json_dump({"b": 1, "a": 2}) == '{\n  "a": 2,\n  "b": 1\n}'
