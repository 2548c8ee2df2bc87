"""Mesh deployment orchestrator.

A full run walks a fixed sequence of run-level states:

    PRE_CLEAN -> SHARE_STORAGE_READY -> DEPS_SYNCED -> NAMESPACE_READY
        -> PER_SERVICE_LOOP -> COMPLETE

and each planned service moves PENDING -> RENDERING -> APPLYING -> DONE.
Any failure marks the service FAILED and the run ABORTED, then propagates;
services applied before the failure are left in place.

Services listed in ``skip_inject_service`` are applied with sidecar
injection switched off on the namespace. The label is restored when the
apply step exits, whether it succeeded or not.
"""

from __future__ import annotations

import getpass
import shutil
from collections.abc import Iterator
from contextlib import contextmanager
from enum import Enum
from pathlib import Path
from typing import Any, assert_never

from loguru import logger

from meshctl.config.models import MeshConfig
from meshctl.utils.console_like import ConsoleLike

from .base import BaseDeployer
from .catalog import (
    FilesystemFragmentSource,
    Fragment,
    FragmentSource,
    ServiceDescriptor,
    build_catalog,
)
from .constants import DeploymentConstants, DeploymentPaths
from .errors import (
    CommandError,
    DeploymentError,
    NamespaceError,
    ServiceNotFound,
)
from .renderer import ManifestRenderer
from .resolver import ResolvedDeploymentPlan, resolve_plan
from .shell_commands import CommandResult, ShellCommands


class RunState(Enum):
    """Run-level progress of a deploy or generate run."""

    PENDING = "pending"
    PRE_CLEAN = "pre_clean"
    SHARE_STORAGE_READY = "share_storage_ready"
    DEPS_SYNCED = "deps_synced"
    NAMESPACE_READY = "namespace_ready"
    PER_SERVICE_LOOP = "per_service_loop"
    COMPLETE = "complete"
    ABORTED = "aborted"


class ServiceState(Enum):
    """Per-service progress within one run."""

    PENDING = "pending"
    RENDERING = "rendering"
    APPLYING = "applying"
    DONE = "done"
    FAILED = "failed"


class Operation(str, Enum):
    """Every operation the orchestrator can be asked to perform."""

    START = "start"
    STOP = "stop"
    RESTART = "restart"
    GENERATE = "gen"
    STATUS = "status"
    PODS = "pods"
    SERVICES = "services"
    PORT = "port"
    LOGS = "logs"
    SERVICE_START = "service-start"
    SERVICE_STOP = "service-stop"
    SERVICE_RELOAD = "service-reload"

    @property
    def needs_service(self) -> bool:
        return self in (
            Operation.LOGS,
            Operation.SERVICE_START,
            Operation.SERVICE_STOP,
            Operation.SERVICE_RELOAD,
        )


class MeshDeployer(BaseDeployer):
    """Renders and applies the planned services to one namespace.

    The catalog and the plan are computed at construction, so a bad config
    (missing service directory, repeated service) fails before any side
    effect.

    Attributes:
        config: Deployment config document
        paths: Deployment path resolver
        commands: Shell command executor
        catalog: Service name to descriptor mapping
        plan: Ordered services for this run
        renderer: Manifest renderer
        run_state: Last run-level state reached
        service_states: Per-service state for this run
    """

    def __init__(
        self,
        console: ConsoleLike | None,
        project_root: Path,
        config: MeshConfig,
        *,
        commands: ShellCommands | None = None,
        source: FragmentSource | None = None,
        paths: DeploymentPaths | None = None,
        constants: DeploymentConstants | None = None,
        namespace: str | None = None,
    ) -> None:
        """Initialize the deployer.

        Args:
            console: Console used for user-facing output
            project_root: Path to the deploy tree root
            config: Deployment config document
            commands: Shell command executor (default: built from project_root)
            source: Fragment source (default: the mesh directory on disk)
            paths: Path resolver (default: derived from project_root and config)
            constants: Optional deployment constants
            namespace: Namespace override, ahead of ``vars["namespace"]``
        """
        super().__init__(console, project_root)
        self.config = config
        self.constants = constants if constants is not None else DeploymentConstants()
        self.paths = (
            paths if paths is not None else DeploymentPaths(project_root, config.output_path)
        )
        self.commands = commands if commands is not None else ShellCommands(project_root)

        if source is None:
            source = FilesystemFragmentSource(self.paths.mesh, self.constants)
        self.catalog: dict[str, ServiceDescriptor] = build_catalog(
            config.service, source
        )
        self.plan: ResolvedDeploymentPlan = resolve_plan(config)
        self.renderer = ManifestRenderer(self.paths, config.vars)

        self.run_state = RunState.PENDING
        self.service_states: dict[str, ServiceState] = {
            name: ServiceState.PENDING for name in self.plan
        }
        self._namespace_override = namespace
        self._namespace: str | None = None

    # =========================================================================
    # Namespace
    # =========================================================================

    @property
    def namespace(self) -> str:
        """Target namespace: override, then ``vars["namespace"]``, then user name."""
        if self._namespace is None:
            self._namespace = self._resolve_namespace()
        return self._namespace

    def _resolve_namespace(self) -> str:
        namespace = self._namespace_override or self.config.vars.get("namespace", "")
        if not namespace:
            try:
                namespace = getpass.getuser()
            except (KeyError, OSError) as e:
                raise NamespaceError("Get user name failed") from e

        namespace = namespace.strip()
        if not namespace:
            raise NamespaceError("Get user name failed")
        return namespace

    def ensure_namespace(self) -> None:
        """Create the target namespace unless the cluster already has it.

        Raises:
            NamespaceError: If creation fails
        """
        namespace = self.namespace
        if self.commands.kubectl.namespace_exists(namespace):
            logger.debug(f"Namespace {namespace} already exists")
            return

        result = self.commands.kubectl.create_namespace(namespace)
        if not result.success:
            raise NamespaceError(
                f"Create namespace {namespace} failed",
                details=f"stdout: {result.stdout.strip() or 'nil'}\n"
                f"stderr: {result.stderr.strip() or 'nil'}",
            )
        self.info(result.stdout.strip() or f"namespace/{namespace} created")

    # =========================================================================
    # Run Steps
    # =========================================================================

    def _advance(self, state: RunState) -> None:
        logger.debug(f"Run state: {self.run_state.value} -> {state.value}")
        self.run_state = state

    def pre_clean(self) -> None:
        """Remove and recreate the output directory tree."""
        output = self.paths.output.resolve()
        root = self.project_root.resolve()
        mesh = self.paths.mesh.resolve()
        if output == root or output in root.parents:
            raise DeploymentError(
                f"Refusing to clean output path {output}",
                details="output_path must not be the deploy tree root or one of its parents.",
            )
        if output == mesh or mesh in output.parents:
            raise DeploymentError(
                f"Refusing to clean output path {output}",
                details=f"output_path must not be the template catalog {mesh} or lie inside it.",
            )

        try:
            if output.exists():
                shutil.rmtree(output)
            output.mkdir(parents=True)
        except OSError as e:
            raise DeploymentError(f"Reset output path {output} failed", details=str(e)) from e

    def ensure_share_storage(self) -> None:
        """Verify or create the shared dependency storage mount point."""
        share = self.paths.share_storage
        error: OSError | None = None
        try:
            share.mkdir(exist_ok=True)
        except OSError as e:
            error = e

        if not share.is_dir():
            raise DeploymentError(
                f"Create share storage {share} failed",
                details=str(error) if error else None,
            )

    def sync_deps(self) -> None:
        """Run the catalog's dependency sync script.

        Raises:
            CommandError: If the script fails to start or exits non-zero
        """
        script = self.paths.sync_script
        result = self.commands.run_bash_script(script)
        logger.debug(f"{script.name} finished: {result.stdout.strip()}")

    def _prepare(self) -> None:
        self._advance(RunState.PRE_CLEAN)
        self.pre_clean()
        self.ensure_share_storage()
        self._advance(RunState.SHARE_STORAGE_READY)
        self.sync_deps()
        self._advance(RunState.DEPS_SYNCED)

    def _execute(self, *, apply: bool) -> None:
        # Fresh states for every run
        self.run_state = RunState.PENDING
        self.service_states = {name: ServiceState.PENDING for name in self.plan}
        try:
            self._prepare()
            if apply:
                self.ensure_namespace()
                self._advance(RunState.NAMESPACE_READY)

            self._advance(RunState.PER_SERVICE_LOOP)
            for name in self.plan:
                self.deploy_service(name, apply=apply)
            self._advance(RunState.COMPLETE)
        except Exception:
            self._advance(RunState.ABORTED)
            raise

    # =========================================================================
    # Per-service
    # =========================================================================

    def descriptor_for(self, name: str) -> ServiceDescriptor:
        """Look up a catalog descriptor.

        Raises:
            ServiceNotFound: If the service is not in the catalog
        """
        descriptor = self.catalog.get(name)
        if descriptor is None:
            raise ServiceNotFound(name)
        return descriptor

    def deploy_service(self, name: str, *, apply: bool = True) -> None:
        """Render one service and, when ``apply`` is set, apply it.

        A service already DONE in this run is skipped.
        """
        if self.service_states.get(name) is ServiceState.DONE:
            logger.debug(f"Service {name} already done, skipping")
            return

        try:
            descriptor = self.descriptor_for(name)
            self.service_states[name] = ServiceState.RENDERING
            self.renderer.render(descriptor)

            if apply:
                self.service_states[name] = ServiceState.APPLYING
                with self.sidecar_injection_disabled(name):
                    self.apply_service(descriptor)
        except Exception:
            self.service_states[name] = ServiceState.FAILED
            raise

        self.service_states[name] = ServiceState.DONE
        if apply:
            self.success(f"Finish deploy service {name}")
        else:
            self.info(f"Generated manifests for {name}")

    def _set_injection(self, value: str) -> None:
        result = self.commands.kubectl.label_namespace(
            self.namespace, self.constants.INJECTION_LABEL, value
        )
        if not result.success:
            raise CommandError(
                [
                    "kubectl",
                    "label",
                    "namespace",
                    self.namespace,
                    f"{self.constants.INJECTION_LABEL}={value}",
                ],
                result,
            )
        self.info(f"Namespace {self.namespace} {self.constants.INJECTION_LABEL}={value}")

    @contextmanager
    def sidecar_injection_disabled(self, name: str) -> Iterator[None]:
        """Disable sidecar injection around a service's apply step.

        Services outside ``skip_inject_service`` pass through untouched.
        """
        if name not in self.config.skip_inject_service:
            yield
            return

        self._set_injection(self.constants.INJECTION_DISABLED)
        try:
            yield
        except Exception:
            # Keep the apply failure as the reported error
            try:
                self._set_injection(self.constants.INJECTION_ENABLED)
            except DeploymentError as restore_error:
                self.error(
                    f"Re-enable sidecar injection on {self.namespace} failed: "
                    f"{restore_error.message}"
                )
            raise
        self._set_injection(self.constants.INJECTION_ENABLED)

    def _report(self, name: str, what: str, result: CommandResult) -> None:
        self.info(f"Service {name} {what} finished: {result.stdout.strip()}")
        if result.stderr.strip():
            self.warning(f"Service {name} {what}: {result.stderr.strip()}")

    def apply_service(self, descriptor: ServiceDescriptor) -> None:
        """Apply a rendered service: the config map alone first, then everything.

        Raises:
            CommandError: If either apply fails
        """
        out_dir = self.paths.service_output_dir(descriptor.name)

        targets: list[Path] = []
        if descriptor.has(Fragment.CONFIG_MAP):
            targets.append(out_dir / Fragment.CONFIG_MAP.file_name)
        targets.append(out_dir)

        for target in targets:
            result = self.commands.kubectl.apply(target)
            if not result.success:
                raise CommandError(["kubectl", "apply", "-f", str(target)], result)
            self._report(descriptor.name, f"apply {target.name}", result)

    # =========================================================================
    # Public Interface
    # =========================================================================

    def deploy(self, **kwargs: Any) -> None:
        """Full run: prepare, ensure the namespace, render and apply every service."""
        self._execute(apply=True)

    def generate(self) -> None:
        """Prepare and render every service without touching the cluster."""
        self._execute(apply=False)

    def teardown(self, **kwargs: Any) -> None:
        """Delete every known resource kind, then the namespace.

        Individual failures are reported and skipped. The reserved default
        namespace is never deleted.
        """
        namespace = self.namespace
        for kind in self.constants.RESOURCE_KINDS:
            result = self.commands.kubectl.delete_all(
                kind, namespace, force=kind in self.constants.FORCE_DELETE_KINDS
            )
            if result.success:
                self.success(f"Delete namespace {namespace} {kind}")
                if result.stdout.strip():
                    self.console.print(result.stdout.strip())
            else:
                self.warning(
                    f"Delete namespace {namespace} {kind} failed: "
                    f"{result.stderr.strip() or 'nil'}"
                )

        if not namespace or namespace == self.constants.DEFAULT_NAMESPACE:
            self.info(f"Keeping namespace {namespace or '<empty>'}")
            return

        result = self.commands.kubectl.delete_namespace(namespace)
        if result.success:
            self.success(f"Namespace {namespace} deleted")
        else:
            self.warning(
                f"Delete namespace {namespace} failed: {result.stderr.strip() or 'nil'}"
            )

    def restart(self) -> None:
        """Teardown followed by a fresh full run."""
        self.teardown()
        self.deploy()

    def show_status(self, kinds: tuple[str, ...] | None = None, **kwargs: Any) -> None:
        """Print the resources of each kind in the namespace."""
        for kind in kinds or self.constants.RESOURCE_KINDS:
            result = self.commands.kubectl.get(kind, self.namespace)
            self.console.print(f"[yellow]show {kind} status:[/yellow]")
            if result.success:
                self.console.print(result.stdout.rstrip() + "\n")
            else:
                self.warning(result.stderr.strip() or f"Cannot list {kind}")

    def show_node_ports(self) -> None:
        """Print the services exposed through a NodePort."""
        result = self.commands.kubectl.get("services", self.namespace)
        if not result.success:
            self.warning(result.stderr.strip() or "Cannot list services")
            return

        lines = result.stdout.splitlines()
        if not lines:
            return
        self.console.print(f"[yellow]{lines[0]}[/yellow]")
        for line in lines[1:]:
            if " NodePort " in line:
                self.console.print(line)

    def _print_log_line(self, line: str) -> None:
        if "error" in line.lower():
            self.error(line)
        else:
            self.console.print(line)

    def follow_logs(self, name: str, tail: int | None = None, since: str | None = None) -> None:
        """Follow the logs of the first pod belonging to a service."""
        pods = [
            pod
            for pod in self.commands.kubectl.get_pod_names(self.namespace)
            if pod.startswith(name)
        ]
        if not pods:
            self.error(f"Not found service {name} pods")
            return

        result = self.commands.kubectl.follow_logs(
            self.namespace,
            pods[0],
            name,
            tail=tail if tail is not None else self.constants.DEFAULT_LOG_TAIL,
            since=since,
            on_output=self._print_log_line,
        )
        if not result.success:
            self.warning(f"Log stream for {pods[0]} ended with exit {result.returncode}")

    def start_service(self, name: str) -> None:
        """Render and apply a single service."""
        self.descriptor_for(name)
        self.ensure_namespace()
        self.deploy_service(name, apply=True)

    def stop_service(self, name: str) -> None:
        """Delete the resources of a single rendered service. Best-effort."""
        self.descriptor_for(name)
        out_dir = self.paths.service_output_dir(name)
        if not out_dir.is_dir():
            self.warning(f"No rendered manifests for {name}, nothing to stop")
            return

        result = self.commands.kubectl.delete_manifests(out_dir)
        if result.success:
            self._report(name, "delete", result)
        else:
            self.warning(f"Stop service {name} failed: {result.stderr.strip() or 'nil'}")

    def reload_service(self, name: str) -> None:
        """Stop a single service, then render and apply it again."""
        self.stop_service(name)
        self.service_states[name] = ServiceState.PENDING
        self.start_service(name)

    def dispatch(
        self,
        op: Operation,
        service: str | None = None,
        *,
        tail: int | None = None,
        since: str | None = None,
    ) -> None:
        """Run one operation.

        Raises:
            DeploymentError: If a service operation is given no service name,
                             or the operation itself fails
        """
        if op.needs_service and not service:
            raise DeploymentError(f"Operation '{op.value}' needs a service name")

        if op is Operation.START:
            self.deploy()
        elif op is Operation.STOP:
            self.teardown()
        elif op is Operation.RESTART:
            self.restart()
        elif op is Operation.GENERATE:
            self.generate()
        elif op is Operation.STATUS:
            self.show_status()
        elif op is Operation.PODS:
            self.show_status(("pods",))
        elif op is Operation.SERVICES:
            self.show_status(("service",))
        elif op is Operation.PORT:
            self.show_node_ports()
        elif op is Operation.LOGS:
            assert service is not None
            self.follow_logs(service, tail=tail, since=since)
        elif op is Operation.SERVICE_START:
            assert service is not None
            self.start_service(service)
        elif op is Operation.SERVICE_STOP:
            assert service is not None
            self.stop_service(service)
        elif op is Operation.SERVICE_RELOAD:
            assert service is not None
            self.reload_service(service)
        else:
            assert_never(op)
