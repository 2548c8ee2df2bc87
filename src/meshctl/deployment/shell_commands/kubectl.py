"""Kubectl command abstractions.

This module builds kubectl invocations for namespace management, manifest
apply/delete and resource queries, delegating execution to CommandRunner.
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING

from .types import CommandResult

if TYPE_CHECKING:
    from .runner import CommandRunner


class KubectlCommands:
    """Kubectl-related shell commands.

    Provides operations for:
    - Namespace management (query, create, label, delete)
    - Manifest apply and delete
    - Bulk resource deletion by kind
    - Resource queries and pod log following

    Methods return the raw CommandResult; deciding which failures are fatal
    is left to the caller.
    """

    def __init__(self, runner: CommandRunner) -> None:
        """Initialize kubectl commands.

        Args:
            runner: Command runner used for execution
        """
        self._runner = runner

    def _run(self, args: list[str]) -> CommandResult:
        return self._runner.run(["kubectl", *args])

    # =========================================================================
    # Namespace Management
    # =========================================================================

    def namespace_exists(self, namespace: str) -> bool:
        """Check if a namespace exists.

        Any failure, including an unreachable cluster, reads as "absent".
        """
        return self._run(["get", "namespace", namespace]).success

    def create_namespace(self, namespace: str) -> CommandResult:
        """Create a namespace."""
        return self._run(["create", "namespace", namespace])

    def label_namespace(self, namespace: str, key: str, value: str) -> CommandResult:
        """Set a label on a namespace, overwriting any previous value."""
        return self._run(["label", "namespace", namespace, f"{key}={value}", "--overwrite"])

    def delete_namespace(self, namespace: str) -> CommandResult:
        """Delete a namespace and everything left in it."""
        return self._run(["delete", "namespace", namespace])

    # =========================================================================
    # Manifests
    # =========================================================================

    def apply(self, manifest_path: Path) -> CommandResult:
        """Apply a manifest file or every manifest in a directory."""
        return self._run(["apply", "-f", str(manifest_path)])

    def delete_manifests(self, manifest_path: Path) -> CommandResult:
        """Delete the resources described by a manifest file or directory."""
        return self._run(["delete", "-f", str(manifest_path), "--ignore-not-found"])

    # =========================================================================
    # Resources
    # =========================================================================

    def delete_all(self, kind: str, namespace: str, *, force: bool = False) -> CommandResult:
        """Delete every resource of a kind in a namespace.

        Args:
            kind: Resource kind (e.g., "deployment", "configmap")
            namespace: Target namespace
            force: Skip graceful termination
        """
        args = ["-n", namespace, "delete", kind, "--all"]
        if force:
            args.extend(["--force", "--grace-period=0"])
        return self._run(args)

    def get(self, kind: str, namespace: str) -> CommandResult:
        """List resources of a kind in a namespace in table form."""
        return self._run(["-n", namespace, "get", kind])

    def get_pod_names(self, namespace: str) -> list[str]:
        """Get the names of all pods in a namespace.

        Returns:
            Pod names, empty when the query fails
        """
        result = self._run(["-n", namespace, "get", "pods", "-o", "name"])
        if not result.success:
            return []
        return [
            line.strip().removeprefix("pod/")
            for line in result.stdout.splitlines()
            if line.strip()
        ]

    def follow_logs(
        self,
        namespace: str,
        pod: str,
        container: str,
        *,
        tail: int,
        since: str | None = None,
        on_output: Callable[[str], None] | None = None,
    ) -> CommandResult:
        """Follow a container's logs until the stream closes.

        Args:
            namespace: Namespace of the pod
            pod: Pod name
            container: Container name within the pod
            tail: Number of recent lines to show first
            since: Only show logs newer than a relative duration (e.g. "5m")
            on_output: Callback invoked with each log line
        """
        cmd = [
            "kubectl",
            "-n",
            namespace,
            "logs",
            pod,
            "-c",
            container,
            f"--tail={tail}",
            "-f",
        ]
        if since:
            cmd.append(f"--since={since}")
        return self._runner.run_streaming(cmd, on_output=on_output)
