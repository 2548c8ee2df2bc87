"""Deployment error taxonomy.

Every fatal condition in a run is a ``DeploymentError`` subclass. The CLI
catches the base class once, prints ``message`` and ``details`` and exits
with the shared fatal status.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .shell_commands.types import CommandResult


class DeploymentError(Exception):
    """Raised when a deployment operation fails."""

    def __init__(self, message: str, details: str | None = None):
        self.message = message
        self.details = details
        super().__init__(message)


class ConfigError(DeploymentError):
    """Config document unreadable, unparseable or invalid."""


class CatalogError(DeploymentError):
    """A declared service has no directory in the catalog."""


class ResolutionError(DeploymentError):
    """The deployment plan could not be resolved."""


class DuplicateService(ResolutionError):
    """A service name appears more than once in the final plan."""

    def __init__(self, service: str):
        self.service = service
        super().__init__(
            f"Found service '{service}' repeated in the deployment plan",
            details="Check the 'service' and 'must_deps' lists for repeated entries.",
        )


class ServiceNotFound(DeploymentError):
    """A planned service has no descriptor in the catalog."""

    def __init__(self, service: str):
        self.service = service
        super().__init__(f"Service '{service}' not found in the catalog")


class TemplateNotFound(DeploymentError):
    """A fragment claimed by a descriptor has no template file."""


class RenderError(DeploymentError):
    """A template failed to parse or render."""


class ValidationFailed(DeploymentError):
    """Rendered output still contains template delimiters."""

    def __init__(self, service: str, file_name: str, match: str):
        self.service = service
        self.file_name = file_name
        self.match = match
        super().__init__(
            f"Rendered {service}/{file_name} failed validation",
            details=f"Unresolved placeholder found: {match!r}",
        )


class CommandError(DeploymentError):
    """An external command failed to start or exited non-zero."""

    def __init__(self, cmd: Sequence[str], result: CommandResult):
        self.cmd = list(cmd)
        self.result = result
        super().__init__(
            f"Command failed (exit {result.returncode}): {' '.join(self.cmd)}",
            details=f"stdout: {result.stdout.strip() or 'nil'}\n"
            f"stderr: {result.stderr.strip() or 'nil'}",
        )


class NamespaceError(DeploymentError):
    """The target namespace could not be resolved or created."""


__all__ = [
    "DeploymentError",
    "ConfigError",
    "CatalogError",
    "ResolutionError",
    "DuplicateService",
    "ServiceNotFound",
    "TemplateNotFound",
    "RenderError",
    "ValidationFailed",
    "CommandError",
    "NamespaceError",
]
