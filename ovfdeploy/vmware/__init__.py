# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# ovfdeploy/vmware/__init__.py
"""vSphere data plane: NFC lease, chunked transfers, datastore access."""
