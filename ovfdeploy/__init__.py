# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# ovfdeploy/__init__.py
"""
ovfdeploy - OVF appliance deployment to vSphere

Usage as a library:

    from ovfdeploy import DeploymentRequest, OvfDeployer
    from ovfdeploy.vmware.client import VMwareClient

    with VMwareClient(logger, "vcenter.example.com", user, password) as vc:
        dc = vc.get_datacenter("DC1")
        host = vc.get_host("esx01.example.com", dc)
        request = DeploymentRequest(
            descriptor="/srv/ovf/appliance.ovf",
            vm_name="appliance-01",
            folder=vc.get_folder(None, dc),
            host=host,
            resource_pool=vc.get_resource_pool(None, host),
            datastore=vc.get_datastore("datastore1", dc),
        )
        result = OvfDeployer(logger, vc.endpoint(), vc.http).deploy(request)
"""

__version__ = "0.1.0"

from .core.exceptions import OvfDeployError
from .orchestrator import DeploymentRequest, DeployOptions, DeployResult, OvfDeployer, deploy_ovf

__all__ = [
    "__version__",
    "OvfDeployError",
    "DeploymentRequest",
    "DeployOptions",
    "DeployResult",
    "OvfDeployer",
    "deploy_ovf",
]
