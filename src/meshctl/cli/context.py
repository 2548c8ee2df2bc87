"""CLI context and dependency container."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

import click
import typer
from dotenv import load_dotenv

from meshctl.cli.shared.console import CLIConsole, console
from meshctl.config import MeshConfig, load_config, resolve_config_path
from meshctl.deployment import MeshDeployer
from meshctl.deployment.constants import DeploymentConstants, DeploymentPaths
from meshctl.deployment.shell_commands import ShellCommands
from meshctl.utils.paths import get_project_root


@dataclass(frozen=True)
class CLIContext:
    """Runtime dependencies for CLI commands."""

    console: CLIConsole
    project_root: Path
    config: MeshConfig
    commands: ShellCommands
    constants: DeploymentConstants
    paths: DeploymentPaths
    namespace: str | None = None
    log_tail: int = DeploymentConstants.DEFAULT_LOG_TAIL
    log_since: str | None = None

    def make_deployer(self) -> MeshDeployer:
        """Build the deployer for this invocation."""
        return MeshDeployer(
            self.console,
            self.project_root,
            self.config,
            commands=self.commands,
            paths=self.paths,
            constants=self.constants,
            namespace=self.namespace,
        )


def build_cli_context(
    env_file: Path | None = None,
    *,
    namespace: str | None = None,
    log_tail: int = DeploymentConstants.DEFAULT_LOG_TAIL,
    log_since: str | None = None,
) -> CLIContext:
    """Build a fresh CLIContext.

    Loads ``.env`` from the deploy tree root first so RUN_ENV and the
    namespace override can come from it.

    Raises:
        ConfigError: If the config document cannot be resolved or loaded
    """
    project_root = get_project_root()
    constants = DeploymentConstants()
    load_dotenv(project_root / ".env", override=False)

    config_path = resolve_config_path(env_file, constants=constants)
    if env_file is None and not config_path.is_absolute():
        config_path = project_root / config_path
    config = load_config(config_path)

    return CLIContext(
        console=console,
        project_root=project_root,
        config=config,
        commands=ShellCommands(project_root),
        constants=constants,
        paths=DeploymentPaths(project_root, config.output_path),
        namespace=namespace or os.getenv(constants.NAMESPACE_ENV_VAR) or None,
        log_tail=log_tail,
        log_since=log_since,
    )


def get_cli_context(ctx: typer.Context | None = None) -> CLIContext:
    """Return the CLIContext from Typer, falling back to a new instance."""
    context = ctx or click.get_current_context(silent=True)
    if context and isinstance(context.obj, CLIContext):
        return context.obj
    return build_cli_context()
