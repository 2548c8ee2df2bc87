"""Service catalog.

Builds one ServiceDescriptor per declared service from a FragmentSource,
the collaborator that reports which manifest fragments a service ships.
The filesystem implementation reads ``mesh/<service>/``; tests use an
in-memory source.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Protocol

from loguru import logger

from .constants import DeploymentConstants
from .errors import CatalogError


class Fragment(Enum):
    """Optional manifest fragment, valued by its file name."""

    CONFIG_MAP = "configmap.yaml"
    WORKLOAD = "dm.yaml"
    NETWORK_SERVICE = "service.yaml"
    MESH_SIDECAR = "istio.yaml"

    @property
    def file_name(self) -> str:
        return self.value


# Rendering order
FRAGMENT_ORDER: tuple[Fragment, ...] = (
    Fragment.CONFIG_MAP,
    Fragment.WORKLOAD,
    Fragment.NETWORK_SERVICE,
    Fragment.MESH_SIDECAR,
)


@dataclass(frozen=True)
class FragmentListing:
    """What a FragmentSource found for one service."""

    fragments: frozenset[Fragment]
    apply_script: str | None = None


class FragmentSource(Protocol):
    """Collaborator that knows which fragments exist per service."""

    def service_exists(self, service: str) -> bool: ...

    def list_fragments_for(self, service: str) -> FragmentListing: ...


@dataclass(frozen=True)
class ServiceDescriptor:
    """Catalog entry for one service."""

    name: str
    fragments: frozenset[Fragment] = frozenset()
    apply_script: str | None = None

    def has(self, fragment: Fragment) -> bool:
        return fragment in self.fragments

    def ordered_fragments(self) -> list[Fragment]:
        """Present fragments in rendering order."""
        return [f for f in FRAGMENT_ORDER if f in self.fragments]


class FilesystemFragmentSource:
    """Reads fragment presence from ``<mesh dir>/<service>/``."""

    def __init__(
        self, mesh_dir: Path, constants: DeploymentConstants | None = None
    ) -> None:
        self.mesh_dir = mesh_dir
        self.constants = constants or DeploymentConstants()

    def service_exists(self, service: str) -> bool:
        return (self.mesh_dir / service).is_dir()

    def list_fragments_for(self, service: str) -> FragmentListing:
        service_dir = self.mesh_dir / service
        known = {f.file_name: f for f in Fragment}

        fragments: set[Fragment] = set()
        apply_script: str | None = None
        for entry in service_dir.iterdir():
            if not entry.is_file():
                continue
            if entry.name in known:
                fragments.add(known[entry.name])
            elif entry.name == self.constants.APPLY_SCRIPT:
                apply_script = entry.name

        if not fragments:
            logger.warning(f"Service {service} directory holds no manifest fragments")

        return FragmentListing(frozenset(fragments), apply_script)


class InMemoryFragmentSource:
    """FragmentSource backed by a plain mapping of service to file names."""

    def __init__(self, files: Mapping[str, Iterable[str]]) -> None:
        self._files = {name: list(entries) for name, entries in files.items()}

    def service_exists(self, service: str) -> bool:
        return service in self._files

    def list_fragments_for(self, service: str) -> FragmentListing:
        known = {f.file_name: f for f in Fragment}
        entries = self._files[service]
        return FragmentListing(
            frozenset(known[e] for e in entries if e in known),
            DeploymentConstants.APPLY_SCRIPT
            if DeploymentConstants.APPLY_SCRIPT in entries
            else None,
        )


def build_catalog(
    services: Iterable[str], source: FragmentSource
) -> dict[str, ServiceDescriptor]:
    """Build a descriptor for every declared service.

    Args:
        services: Declared service names
        source: Fragment presence collaborator

    Returns:
        Mapping of service name to descriptor

    Raises:
        CatalogError: If a declared service has no directory
    """
    catalog: dict[str, ServiceDescriptor] = {}
    for name in services:
        if name in catalog:
            continue
        if not source.service_exists(name):
            raise CatalogError(f"Service {name} directory not found")

        listing = source.list_fragments_for(name)
        catalog[name] = ServiceDescriptor(
            name=name,
            fragments=listing.fragments,
            apply_script=listing.apply_script,
        )
        logger.debug(
            f"Catalog: {name} -> "
            f"{[f.file_name for f in catalog[name].ordered_fragments()]}"
        )
    return catalog
