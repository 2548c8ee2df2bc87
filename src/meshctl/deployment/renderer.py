"""Manifest rendering and validation.

Fragments are Jinja2 templates rendered with the config ``vars`` mapping.
Undefined variables are errors, and a post-render guard rejects any output
that still carries template delimiters: rendered manifests go straight to a
live cluster.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from jinja2 import (
    Environment,
    FileSystemLoader,
    StrictUndefined,
    TemplateError,
    TemplateSyntaxError,
)
from loguru import logger

from .catalog import Fragment, ServiceDescriptor
from .constants import DeploymentPaths
from .errors import DeploymentError, RenderError, TemplateNotFound, ValidationFailed

# Checked in order; the first hit is reported
LEFTOVER_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\{\{.*?\}\}"),
    re.compile(r"\{\{"),
    re.compile(r"\}\}"),
)


@dataclass
class RenderedManifest:
    """One fragment after substitution."""

    fragment: Fragment
    content: str

    @property
    def file_name(self) -> str:
        return self.fragment.file_name


def find_leftover_placeholder(text: str) -> str | None:
    """Return the first leftover template delimiter in text, if any."""
    for pattern in LEFTOVER_PATTERNS:
        match = pattern.search(text)
        if match:
            return match.group(0)
    return None


def get_template_env(mesh_dir: Path) -> Environment:
    """Get the Jinja2 environment for manifest templates."""
    return Environment(
        loader=FileSystemLoader(mesh_dir),
        undefined=StrictUndefined,
        keep_trailing_newline=True,
        autoescape=False,
    )


class ManifestRenderer:
    """Renders a service's fragments into its output directory."""

    def __init__(self, paths: DeploymentPaths, variables: Mapping[str, str]) -> None:
        """Initialize the renderer.

        Args:
            paths: Deployment path resolver (mesh and output directories)
            variables: Flat template variable mapping
        """
        self.paths = paths
        self.variables = dict(variables)
        self._env = get_template_env(paths.mesh)

    def render_fragment(
        self, descriptor: ServiceDescriptor, fragment: Fragment
    ) -> RenderedManifest:
        """Render and validate one fragment without writing it.

        Raises:
            TemplateNotFound: If the template file is missing
            RenderError: If the template fails to parse or render
            ValidationFailed: If the output still holds template delimiters
        """
        source = self.paths.service_dir(descriptor.name) / fragment.file_name
        if not source.is_file():
            raise TemplateNotFound(f"{source} not found")

        template_name = f"{descriptor.name}/{fragment.file_name}"
        try:
            template = self._env.get_template(template_name)
        except TemplateSyntaxError as e:
            raise RenderError(
                f"Template {template_name} parse failed",
                details=f"line {e.lineno}: {e.message}",
            ) from e
        except UnicodeDecodeError as e:
            raise RenderError(
                f"Template {template_name} is not valid UTF-8", details=str(e)
            ) from e

        try:
            content = template.render(**self.variables)
        except TemplateError as e:  # includes UndefinedError
            raise RenderError(
                f"Template {template_name} execute failed", details=str(e)
            ) from e

        leftover = find_leftover_placeholder(content)
        if leftover is not None:
            raise ValidationFailed(descriptor.name, fragment.file_name, leftover)

        return RenderedManifest(fragment=fragment, content=content)

    def write(self, descriptor: ServiceDescriptor, manifest: RenderedManifest) -> Path:
        """Write a rendered manifest under the service's output directory.

        Raises:
            DeploymentError: If the directory or file cannot be written
        """
        target_dir = self.paths.service_output_dir(descriptor.name)
        target = target_dir / manifest.file_name
        try:
            target_dir.mkdir(parents=True, exist_ok=True)
            target.write_bytes(manifest.content.encode("utf-8"))
        except OSError as e:
            raise DeploymentError(f"Write {target} failed", details=str(e)) from e
        logger.debug(f"Wrote {target}")
        return target

    def render(self, descriptor: ServiceDescriptor) -> list[Path]:
        """Render, validate and write every fragment of a service.

        Fragments are processed in order and each is written only after it
        passes validation; the first failure stops the service.

        Returns:
            Paths of the written files
        """
        written: list[Path] = []
        for fragment in descriptor.ordered_fragments():
            manifest = self.render_fragment(descriptor, fragment)
            written.append(self.write(descriptor, manifest))
        return written
