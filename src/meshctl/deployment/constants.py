"""Deployment constants and configuration.

This module centralizes the magic strings, paths, and configuration values
used throughout the deployment process.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from meshctl.utils.paths import MESH_DIR_NAME


@dataclass(frozen=True)
class DeploymentConstants:
    """Constants for manifest rendering and kubectl deployment.

    All attributes are class-level and immutable.
    """

    # Kubernetes identifiers
    DEFAULT_NAMESPACE: str = "default"
    INJECTION_LABEL: str = "istio-injection"
    INJECTION_ENABLED: str = "enabled"
    INJECTION_DISABLED: str = "disabled"

    # Resource kinds touched by teardown and status, in teardown order
    RESOURCE_KINDS: tuple[str, ...] = (
        "deployment",
        "daemonsets",
        "pods",
        "service",
        "configmap",
        "vs",
        "dr",
    )
    # Kinds deleted with --force --grace-period=0
    FORCE_DELETE_KINDS: tuple[str, ...] = ("deployment", "daemonsets", "pods")

    # Service catalog layout
    MESH_DIR: str = MESH_DIR_NAME
    SYNC_SCRIPT: str = "sync.sh"
    APPLY_SCRIPT: str = "apply.sh"

    # Shared dependency storage mounted into workloads
    SHARE_STORAGE_PATH: str = "/biss-dep"

    # Config selection
    DEFAULT_CONFIG_PATH: str = "etc/test_env.yaml"
    RUN_ENV_VAR: str = "RUN_ENV"
    PRODUCTION_RUN_ENV: str = "PROD"
    NAMESPACE_ENV_VAR: str = "MESHCTL_NAMESPACE"

    # Log following
    DEFAULT_LOG_TAIL: int = 150

    # Exit status shared by every fatal path
    FATAL_EXIT_CODE: int = 99


class DeploymentPaths:
    """Path resolver for deployment-related directories and files.

    All paths derive from the deploy tree root and the configured
    output path.
    """

    def __init__(
        self,
        project_root: Path,
        output_path: str = "output",
        share_storage: Path | None = None,
    ) -> None:
        """Initialize deployment paths.

        Args:
            project_root: Path to the deploy tree root
            output_path: Rendered output directory, relative to the root
                        unless absolute
            share_storage: Shared storage mount point (default: /biss-dep)
        """
        self.project_root = project_root
        self._constants = DeploymentConstants()
        self._share_storage = share_storage or Path(
            self._constants.SHARE_STORAGE_PATH
        )

        self.mesh = project_root / self._constants.MESH_DIR
        output = Path(output_path)
        self.output = output if output.is_absolute() else project_root / output

    @property
    def sync_script(self) -> Path:
        """Get path to the dependency sync script."""
        return self.mesh / self._constants.SYNC_SCRIPT

    @property
    def share_storage(self) -> Path:
        """Get path to the shared dependency storage mount."""
        return self._share_storage

    def service_dir(self, service: str) -> Path:
        """Get the template directory of a service."""
        return self.mesh / service

    def service_output_dir(self, service: str) -> Path:
        """Get the rendered output directory of a service."""
        return self.output / service
