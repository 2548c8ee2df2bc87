"""Deployment config document loading."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from loguru import logger
from pydantic import ValidationError

from meshctl.deployment.constants import DeploymentConstants
from meshctl.deployment.errors import ConfigError

from .models import MeshConfig


def resolve_config_path(
    explicit: Path | None,
    run_env: str | None = None,
    constants: DeploymentConstants | None = None,
) -> Path:
    """Pick the config document for this invocation.

    In production (``RUN_ENV=PROD``) an explicit path is mandatory; elsewhere
    the test document is used when none is given.

    Args:
        explicit: Path passed on the command line, if any
        run_env: Execution mode marker (default: read from the environment)
        constants: Optional deployment constants

    Returns:
        Path of the config document to load

    Raises:
        ConfigError: If running in production without an explicit path
    """
    constants = constants or DeploymentConstants()
    if run_env is None:
        run_env = os.getenv(constants.RUN_ENV_VAR, "")

    logger.debug(f"{constants.RUN_ENV_VAR}: {run_env!r}")

    if explicit is not None:
        return explicit

    if run_env == constants.PRODUCTION_RUN_ENV:
        raise ConfigError(
            f"{constants.PRODUCTION_RUN_ENV} requires an explicit env file",
            details="Pass the config document with --env.",
        )

    logger.info(f"No env file given, loading {constants.DEFAULT_CONFIG_PATH}")
    return Path(constants.DEFAULT_CONFIG_PATH)


def load_config(file_path: Path) -> MeshConfig:
    """Load and validate a deployment config document.

    Args:
        file_path: Path to the YAML document

    Returns:
        Validated MeshConfig; an empty document yields all defaults

    Raises:
        ConfigError: If the file cannot be read, is not valid YAML, or does
                     not match the config schema
    """
    try:
        content = file_path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read env file {file_path}: {e}") from e

    try:
        loaded: Any = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigError(f"Error parsing env file {file_path}", details=str(e)) from e

    if loaded is None:
        loaded = {}
    if not isinstance(loaded, dict):
        raise ConfigError(
            f"Invalid env file {file_path}: top level must be a mapping"
        )

    try:
        config = MeshConfig(**loaded)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {file_path}", details=str(e)) from e

    logger.debug(
        f"Loaded {len(config.service)} declared services, "
        f"{len(config.service_group)} groups from {file_path}"
    )
    return config
