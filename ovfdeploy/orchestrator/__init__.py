# SPDX-License-Identifier: LGPL-3.0-or-later
# ovfdeploy/orchestrator/__init__.py
from .models import DeploymentRequest, DeployOptions, DeployResult, DiskProvisioning
from .deployer import OvfDeployer, deploy_ovf

__all__ = ["DeploymentRequest", "DeployOptions", "DeployResult", "DiskProvisioning", "OvfDeployer", "deploy_ovf"]
