"""Main CLI application module.

Command Groups:
- (top level): start, stop, restart, gen, status, pods, services, port, logs
- service: start, stop or reload a single service
"""

from .deploy_commands import app
from .service_commands import service_app

app.add_typer(service_app, name="service")


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
