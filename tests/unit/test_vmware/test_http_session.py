# SPDX-License-Identifier: LGPL-3.0-or-later
from __future__ import annotations

import unittest
from unittest.mock import MagicMock, patch

from fakes.fake_logger import FakeLogger
from ovfdeploy.core.exceptions import VMwareError
from ovfdeploy.vmware.http_session import VsphereHttpSession


class TestVsphereHttpSession(unittest.TestCase):
    def setUp(self):
        self.logger = FakeLogger()

    def test_base_url(self):
        self.assertEqual(VsphereHttpSession(self.logger, "esx01").base_url, "https://esx01")
        self.assertEqual(VsphereHttpSession(self.logger, "esx01", port=8443).base_url, "https://esx01:8443")

    def test_invalid_arguments(self):
        with self.assertRaises(ValueError):
            VsphereHttpSession(self.logger, "")
        with self.assertRaises(ValueError):
            VsphereHttpSession(self.logger, "esx01", port=0)
        with self.assertRaises(ValueError):
            VsphereHttpSession(self.logger, "esx01", timeout=0)

    def test_cookie_keeps_first_pair(self):
        s = VsphereHttpSession(self.logger, "esx01")
        s.set_session_cookie('vmware_soap_session="52a1"; Path=/; HttpOnly; Secure;')
        self.assertEqual(s.get_session_cookie(), 'vmware_soap_session="52a1"')
        self.assertEqual(
            s.auth_headers({"Content-Type": "x"}),
            {"Cookie": 'vmware_soap_session="52a1"', "Content-Type": "x"},
        )

    def test_cookie_validation(self):
        s = VsphereHttpSession(self.logger, "esx01")
        with self.assertRaises(ValueError):
            s.set_session_cookie("  ")
        with self.assertRaises(ValueError):
            s.set_session_cookie("novalue")

    def test_missing_cookie(self):
        with self.assertRaises(VMwareError):
            VsphereHttpSession(self.logger, "esx01").auth_headers()

    def test_session_is_pooled_and_honours_insecure(self):
        client = MagicMock()
        with patch("ovfdeploy.vmware.http_session.urllib3.disable_warnings") as dw:
            s = VsphereHttpSession(self.logger, "esx01", insecure=True, http_client=client)
            dw.assert_called_once()
        first = s.session
        self.assertIs(first, s.session)
        client.Session.assert_called_once()
        self.assertFalse(first.verify)
        client.adapters.HTTPAdapter.assert_called_once()
        self.assertEqual(client.adapters.HTTPAdapter.call_args.kwargs["max_retries"], 0)

        s.close()
        first.close.assert_called_once()


if __name__ == "__main__":
    unittest.main()
