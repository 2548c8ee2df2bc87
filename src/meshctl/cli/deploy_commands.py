"""Deployment commands for the whole mesh.

Every command maps to exactly one ``Operation``; the deployer dispatches it.
Running ``meshctl`` with no command performs a full ``start``.
"""

from pathlib import Path

import typer

from meshctl.deployment import Operation
from meshctl.deployment.constants import DeploymentConstants

from .context import build_cli_context, get_cli_context
from .shared import configure_logging, console, with_error_handling

app = typer.Typer(
    help="🕸️  Render and deploy mesh services to Kubernetes",
    invoke_without_command=True,
    rich_markup_mode="rich",
)


# Operations that walk the whole plan
PLANNED_OPERATIONS = (Operation.START, Operation.RESTART, Operation.GENERATE)


def run_operation(
    ctx: typer.Context, op: Operation, service: str | None = None
) -> None:
    """Build the deployer for this invocation and dispatch one operation."""
    cli_ctx = get_cli_context(ctx)
    deployer = cli_ctx.make_deployer()
    if op in PLANNED_OPERATIONS:
        console.print_plan(deployer.plan, deployer.config.skip_inject_service)
    deployer.dispatch(op, service, tail=cli_ctx.log_tail, since=cli_ctx.log_since)


@app.callback()
@with_error_handling
def main_callback(
    ctx: typer.Context,
    env: Path | None = typer.Option(
        None,
        "--env",
        "-e",
        help="Env config file (default: etc/test_env.yaml, required when RUN_ENV=PROD)",
    ),
    namespace: str | None = typer.Option(
        None,
        "--namespace",
        "-n",
        envvar=DeploymentConstants.NAMESPACE_ENV_VAR,
        help="Target namespace (default: vars.namespace, then the current user)",
    ),
    tail: int = typer.Option(
        DeploymentConstants.DEFAULT_LOG_TAIL,
        "--tail",
        help="Lines of recent log output to display",
    ),
    since: str | None = typer.Option(
        None,
        "--since",
        help="Only return logs newer than a relative duration like 5s, 2m, or 3h",
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Show debug traces on stderr"
    ),
) -> None:
    """Load the env config and run a full start when no command is given."""
    configure_logging(verbose)
    ctx.obj = build_cli_context(
        env, namespace=namespace, log_tail=tail, log_since=since
    )

    if ctx.invoked_subcommand is None:
        run_operation(ctx, Operation.START)


@app.command()
@with_error_handling
def start(ctx: typer.Context) -> None:
    """🚀 Render and apply every planned service."""
    console.print_header("Deploying mesh services")
    run_operation(ctx, Operation.START)


@app.command()
@with_error_handling
def stop(
    ctx: typer.Context,
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompt"),
) -> None:
    """⏹️  Delete all mesh resources and the namespace."""
    if not console.confirm_action(
        "Stop all mesh services",
        details="Every deployment, pod, service, config map and mesh route "
        "in the namespace will be deleted.",
        force=yes,
    ):
        console.print("[dim]Operation cancelled.[/dim]")
        raise typer.Exit(0)

    console.print_header("Stopping mesh services", style="red")
    run_operation(ctx, Operation.STOP)


@app.command()
@with_error_handling
def restart(
    ctx: typer.Context,
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompt"),
) -> None:
    """🔄 Tear everything down, then run a full start."""
    if not console.confirm_action(
        "Restart all mesh services",
        details="All resources in the namespace are deleted before redeploying.",
        force=yes,
    ):
        console.print("[dim]Operation cancelled.[/dim]")
        raise typer.Exit(0)

    run_operation(ctx, Operation.RESTART)


@app.command("gen")
@with_error_handling
def generate(ctx: typer.Context) -> None:
    """📝 Render manifests from templates and vars without applying them."""
    run_operation(ctx, Operation.GENERATE)


@app.command()
@with_error_handling
def status(ctx: typer.Context) -> None:
    """📊 Show every known resource kind in the namespace."""
    run_operation(ctx, Operation.STATUS)


@app.command()
@with_error_handling
def pods(ctx: typer.Context) -> None:
    """List pods in the namespace."""
    run_operation(ctx, Operation.PODS)


@app.command()
@with_error_handling
def services(ctx: typer.Context) -> None:
    """List Kubernetes services in the namespace."""
    run_operation(ctx, Operation.SERVICES)


@app.command()
@with_error_handling
def port(ctx: typer.Context) -> None:
    """List services exposed through a NodePort."""
    run_operation(ctx, Operation.PORT)


@app.command()
@with_error_handling
def logs(
    ctx: typer.Context,
    service: str = typer.Argument(..., help="Service whose pod logs to follow"),
) -> None:
    """📜 Follow the logs of a service's pod."""
    run_operation(ctx, Operation.LOGS, service)
