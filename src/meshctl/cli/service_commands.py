"""Single-service commands."""

import typer

from meshctl.deployment import Operation

from .deploy_commands import run_operation
from .shared import with_error_handling

service_app = typer.Typer(help="Start, stop or reload one service")


@service_app.command("start")
@with_error_handling
def start_service(
    ctx: typer.Context,
    service: str = typer.Argument(..., help="Service name"),
) -> None:
    """Render and apply one service."""
    run_operation(ctx, Operation.SERVICE_START, service)


@service_app.command("stop")
@with_error_handling
def stop_service(
    ctx: typer.Context,
    service: str = typer.Argument(..., help="Service name"),
) -> None:
    """Delete the resources of one rendered service."""
    run_operation(ctx, Operation.SERVICE_STOP, service)


@service_app.command("reload")
@with_error_handling
def reload_service(
    ctx: typer.Context,
    service: str = typer.Argument(..., help="Service name"),
) -> None:
    """Stop one service, then render and apply it again."""
    run_operation(ctx, Operation.SERVICE_RELOAD, service)
