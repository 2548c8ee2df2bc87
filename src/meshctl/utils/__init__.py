from .console_like import ConsoleLike, LoguruConsole, coalesce_console
from .paths import get_project_root

__all__ = ["ConsoleLike", "LoguruConsole", "coalesce_console", "get_project_root"]
