"""Deployment package: catalog, plan resolution, rendering and apply.

- catalog: service descriptors built from the fragments each service ships
- resolver: selection, mandatory deps and priority tiers into an ordered plan
- renderer: Jinja2 manifest rendering with a leftover-placeholder guard
- orchestrator: MeshDeployer, the run and per-service state machine
- shell_commands: command runner and kubectl invocations
"""

from .errors import DeploymentError
from .orchestrator import MeshDeployer, Operation, RunState, ServiceState

__all__ = ["MeshDeployer", "Operation", "RunState", "ServiceState", "DeploymentError"]
