"""Configuration models for the deployment document."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Selector(BaseModel):
    """Service selection by name and/or group name."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    service: list[str] = Field(default_factory=list)
    service_group: list[str] = Field(default_factory=list)

    @field_validator("service", "service_group", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    @property
    def is_empty(self) -> bool:
        return not self.service and not self.service_group


class MeshConfig(BaseModel):
    """Root deployment configuration, loaded once per run.

    Names referenced by groups, selectors and tier lists are not checked
    against ``service`` here; a dangling name surfaces when the plan is
    executed.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    output_path: str = "output"
    vars: dict[str, str] = Field(default_factory=dict)
    service: list[str] = Field(default_factory=list)
    service_group: dict[str, list[str]] = Field(default_factory=dict)
    enable: Selector = Field(default_factory=Selector)
    disable: Selector = Field(default_factory=Selector)
    must_deps: list[str] = Field(default_factory=list)
    skip_inject_service: list[str] = Field(default_factory=list)

    high_priority_deps: list[str] = Field(default_factory=list)
    mid_priority_deps: list[str] = Field(default_factory=list)
    low_priority_deps: list[str] = Field(default_factory=list)

    @field_validator(
        "service",
        "must_deps",
        "skip_inject_service",
        "high_priority_deps",
        "mid_priority_deps",
        "low_priority_deps",
        mode="before",
    )
    @classmethod
    def _none_as_empty_list(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("service_group", mode="before")
    @classmethod
    def _none_as_empty_groups(cls, value: Any) -> Any:
        if value is None:
            return {}
        if isinstance(value, dict):
            return {name: members or [] for name, members in value.items()}
        return value

    @field_validator("enable", "disable", mode="before")
    @classmethod
    def _none_as_empty_selector(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("vars", mode="before")
    @classmethod
    def _stringify_vars(cls, value: Any) -> Any:
        # YAML turns bare numbers and booleans into non-strings
        if value is None:
            return {}
        if isinstance(value, dict):
            return {
                str(key): "" if item is None else str(item)
                for key, item in value.items()
            }
        return value
