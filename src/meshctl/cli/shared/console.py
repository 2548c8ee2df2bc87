"""Console output for meshctl commands.

Everything user-facing goes through ``CLIConsole``; diagnostics go to loguru
(see ``logging_setup``).
"""

from collections.abc import Callable, Collection, Iterable
from functools import wraps

import typer
from rich.console import Console, ConsoleRenderable
from rich.panel import Panel
from rich.status import Status
from rich.table import Table

from meshctl.deployment.constants import DeploymentConstants
from meshctl.deployment.errors import DeploymentError

# (style, marker) per message kind
_MARKERS: dict[str, tuple[str, str]] = {
    "info": ("cyan", "ℹ "),
    "ok": ("green", "✅"),
    "warn": ("yellow", "⚠️ "),
    "error": ("red", "❌"),
}


class CLIConsole:
    """Rich console wrapper for consistent CLI output."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def _emit(self, kind: str, msg: str) -> None:
        style, marker = _MARKERS[kind]
        self.console.print(f"[{style}]{marker}[/{style}] {msg}")

    def print(self, msg: ConsoleRenderable | str | None = None) -> None:
        self.console.print("" if msg is None else msg)

    def status(self, status: str) -> Status:
        return self.console.status(status)

    def info(self, msg: str) -> None:
        self._emit("info", msg)

    def ok(self, msg: str) -> None:
        self._emit("ok", msg)

    def warn(self, msg: str) -> None:
        self._emit("warn", msg)

    def error(self, msg: str) -> None:
        self._emit("error", msg)

    def confirm_action(
        self,
        action: str,
        details: str | None = None,
        force: bool = False,
    ) -> bool:
        """Ask before a destructive cluster operation.

        Args:
            action: What is about to happen (e.g., "Stop all mesh services")
            details: What will be affected
            force: Skip the prompt and answer yes (``--yes``)

        Returns:
            True if the user confirmed
        """
        if force:
            return True

        body = f"[bold red]{action}[/bold red]"
        if details:
            body += f"\n\n{details}"
        self.console.print(Panel(body, title="Confirmation Required", border_style="red"))

        try:
            answer = self.console.input("\n[bold]Proceed?[/bold] \\[y/N]: ")
        except (KeyboardInterrupt, EOFError):
            self.console.print("\n[dim]Cancelled.[/dim]")
            return False
        return answer.strip().lower() in ("y", "yes")

    def print_plan(self, services: Iterable[str], skip_inject: Collection[str]) -> None:
        """Show the resolved deployment order before anything is applied."""
        table = Table(title="Deployment plan", title_justify="left")
        table.add_column("#", justify="right", style="dim")
        table.add_column("Service", style="bold")
        table.add_column("Sidecar injection")

        for index, name in enumerate(services, 1):
            injection = "[yellow]disabled[/yellow]" if name in skip_inject else "enabled"
            table.add_row(str(index), name, injection)

        if table.row_count:
            self.console.print(table)
        else:
            self.warn("Deployment plan is empty")

    def handle_error(
        self,
        message: str,
        details: str | None = None,
        exit_code: int = DeploymentConstants.FATAL_EXIT_CODE,
    ) -> None:
        """Print a fatal error and exit.

        Raises:
            typer.Exit: Always, with ``exit_code``
        """
        self.console.print(f"\n[bold red]❌ {message}[/bold red]\n")
        if details:
            self.console.print(Panel(details, title="Details", border_style="red"))
        raise typer.Exit(exit_code)

    def print_header(self, title: str, style: str = "blue") -> None:
        self.console.print(
            Panel.fit(f"[bold {style}]{title}[/bold {style}]", border_style=style)
        )


def with_error_handling(func: Callable[..., None]) -> Callable[..., None]:
    """Map every DeploymentError to the shared fatal exit status.

    Ctrl-C exits with 130 instead.
    """

    @wraps(func)
    def wrapper(*args: object, **kwargs: object) -> None:
        try:
            func(*args, **kwargs)
        except DeploymentError as e:
            console.handle_error(e.message, e.details)
        except KeyboardInterrupt:
            console.print("\n[dim]Operation cancelled by user.[/dim]")
            raise typer.Exit(130) from None

    return wrapper


# Shared console instance for consistent output
console = CLIConsole()
