"""Shell command abstractions for kubectl deployment operations.

- runner: synchronous command execution with structured results
- kubectl: Kubernetes namespace and resource management

Usage:
    from meshctl.deployment.shell_commands import ShellCommands

    commands = ShellCommands(project_root=Path("."))
    if not commands.kubectl.namespace_exists("mesh"):
        commands.kubectl.create_namespace("mesh")
"""

from pathlib import Path

from .kubectl import KubectlCommands
from .runner import CommandRunner
from .types import CommandResult


class ShellCommands:
    """Unified interface for all shell command operations.

    Attributes:
        runner: Low-level command runner
        kubectl: Kubernetes kubectl commands
    """

    def __init__(self, project_root: Path) -> None:
        """Initialize the shell commands executor.

        Args:
            project_root: Path to the deploy tree root.
                         Commands will be executed from this directory by default.
        """
        self._project_root = Path(project_root)
        self.runner = CommandRunner(self._project_root)
        self.kubectl = KubectlCommands(self.runner)

    @property
    def project_root(self) -> Path:
        """Get the project root path."""
        return self._project_root

    def run_bash_script(
        self, script_path: Path, args: list[str] | None = None
    ) -> CommandResult:
        """Execute a bash script from its own directory.

        Raises:
            CommandError: If the script fails to start or exits non-zero
        """
        cmd = ["bash", script_path.name]
        if args:
            cmd.extend(args)
        return self.runner.run_checked(cmd, cwd=script_path.parent)


__all__ = [
    "ShellCommands",
    "CommandResult",
    "CommandRunner",
    "KubectlCommands",
]
