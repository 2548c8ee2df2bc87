"""Base deployer class with shared functionality."""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from meshctl.utils.console_like import ConsoleLike, coalesce_console


class BaseDeployer(ABC):
    """Abstract base class for deployers."""

    def __init__(self, console: ConsoleLike | None, project_root: Path):
        """Initialize the deployer.

        Args:
            console: Console used for user-facing output
            project_root: Path to the deploy tree root
        """
        self.console = coalesce_console(console)
        self.project_root = project_root

    @abstractmethod
    def deploy(self, **kwargs: Any) -> None:
        """Deploy every planned service."""
        pass

    @abstractmethod
    def teardown(self, **kwargs: Any) -> None:
        """Remove everything the deployer manages."""
        pass

    @abstractmethod
    def show_status(self, **kwargs: Any) -> None:
        """Display the current status of the deployment."""
        pass

    def success(self, message: str) -> None:
        self.console.ok(message)

    def error(self, message: str) -> None:
        self.console.error(message)

    def warning(self, message: str) -> None:
        self.console.warn(message)

    def info(self, message: str) -> None:
        self.console.info(message)
