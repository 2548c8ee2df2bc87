"""Dependency and priority resolution.

Turns the configured selection into the ordered deployment plan:

1. select (everything, or the first-seen union of enabled groups and services)
2. prepend mandatory dependencies that are not already selected
3. stable partition into high, mid, low and base tiers
4. reject any repeated name
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass

from loguru import logger

from meshctl.config.models import MeshConfig, Selector

from .errors import DuplicateService


@dataclass(frozen=True)
class ResolvedDeploymentPlan:
    """Ordered service names for one run. Names never repeat."""

    services: tuple[str, ...]

    def __post_init__(self) -> None:
        seen: set[str] = set()
        for name in self.services:
            if name in seen:
                raise DuplicateService(name)
            seen.add(name)

    def __iter__(self) -> Iterator[str]:
        return iter(self.services)

    def __len__(self) -> int:
        return len(self.services)

    def __contains__(self, name: object) -> bool:
        return name in self.services


def _first_seen(names: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    ordered: list[str] = []
    for name in names:
        if name not in seen:
            seen.add(name)
            ordered.append(name)
    return ordered


def _expand(selector: Selector, groups: dict[str, list[str]]) -> list[str]:
    """Members of the selected groups, then the named services."""
    names: list[str] = []
    for group in selector.service_group:
        if group not in groups:
            logger.warning(f"Service group '{group}' is not declared")
            continue
        names.extend(groups[group])
    names.extend(selector.service)
    return names


def select_services(config: MeshConfig) -> list[str]:
    """Services chosen by the enable selector.

    With no enable selector the declared list is returned as-is, repeats
    included, so the duplicate check can flag them.
    """
    if config.enable.is_empty:
        return list(config.service)
    return _first_seen(_expand(config.enable, config.service_group))


def fill_must_deps(selected: Sequence[str], must_deps: Sequence[str]) -> list[str]:
    """Prepend mandatory deps missing from the selection, in declared order."""
    missing = [name for name in must_deps if name not in selected]
    return [*missing, *selected]


def sort_by_priority(
    names: Sequence[str],
    high: Sequence[str],
    mid: Sequence[str],
    low: Sequence[str],
) -> list[str]:
    """Stable partition into high ++ mid ++ low ++ base."""
    tiers: tuple[tuple[set[str], list[str]], ...] = (
        (set(high), []),
        (set(mid), []),
        (set(low), []),
    )
    base: list[str] = []

    for name in names:
        for members, bucket in tiers:
            if name in members:
                bucket.append(name)
                break
        else:
            base.append(name)

    ordered: list[str] = []
    for _, bucket in tiers:
        ordered.extend(bucket)
    ordered.extend(base)
    return ordered


def resolve_plan(config: MeshConfig) -> ResolvedDeploymentPlan:
    """Compute the deployment plan for a config.

    Raises:
        DuplicateService: If any name would be deployed twice
    """
    ordered = sort_by_priority(
        fill_must_deps(select_services(config), config.must_deps),
        config.high_priority_deps,
        config.mid_priority_deps,
        config.low_priority_deps,
    )
    plan = ResolvedDeploymentPlan(tuple(ordered))
    logger.debug(f"Resolved deployment plan: {list(plan)}")
    return plan
