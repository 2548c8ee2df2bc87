from pathlib import Path

MESH_DIR_NAME = "mesh"


def get_project_root(start: Path | None = None) -> Path:
    """Get the deploy tree root directory.

    Walks up from ``start`` (default: the current working directory) to find
    the directory holding the ``mesh/`` service catalog.

    Returns:
        Path to the deploy tree root, or ``start`` itself when no parent
        contains a catalog
    """
    current = (start or Path.cwd()).resolve()

    for parent in [current, *current.parents]:
        if (parent / MESH_DIR_NAME).is_dir():
            return parent

    return current
