"""Parameter resolution for step configurations.

Each step kind has a static table of accepted parameters. User configuration
is merged over the table defaults and rejected when it names unknown keys,
omits required ones, or supplies values of the wrong type.
"""

from __future__ import annotations

import copy
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from typing import Any

from conveyor.errors import ConfigError, ConfigErrorReason
from conveyor.models.pipeline import StepKind

_TYPE_NAMES = {str: "string", bool: "bool", int: "int", list: "list"}


@dataclass(frozen=True)
class ParameterSpec:
    """Declared type and default of one step parameter."""

    type: type
    required: bool = False
    default: Any = None

    def accepts(self, value: Any) -> bool:
        # bool is an int subclass but never a valid int parameter
        if self.type is int:
            return isinstance(value, int) and not isinstance(value, bool)
        return isinstance(value, self.type)


def _required(kind: type) -> ParameterSpec:
    return ParameterSpec(kind, required=True)


def _optional(kind: type, default: Any) -> ParameterSpec:
    return ParameterSpec(kind, default=default)


DEFAULT_PARAMETERS: dict[StepKind, dict[str, ParameterSpec]] = {
    StepKind.BUILD: {
        "command": _required(str),
        "workdir": _optional(str, "."),
        "outputs": _optional(list, []),
    },
    StepKind.TEST: {
        "command": _required(str),
        "workdir": _optional(str, "."),
        "allowedExitCodes": _optional(list, [0]),
    },
    StepKind.CHECKOUT: {
        "repository": _required(str),
        "branch": _optional(str, "main"),
        "directory": _optional(str, "."),
        "depth": _optional(int, 1),
    },
    StepKind.DOCKER_BUILD: {
        "image": _required(str),
        "tag": _optional(str, "latest"),
        "context": _optional(str, "."),
        "dockerfile": _optional(str, "Dockerfile"),
        "buildArgs": _optional(list, []),
        "push": _optional(bool, False),
        "credentialsId": _optional(str, ""),
    },
    StepKind.DOCKER_PUSH: {
        "image": _required(str),
        "credentialsId": _optional(str, "dockerHubCred"),
        "logout": _optional(bool, True),
    },
    StepKind.DEPLOY: {
        "deployment": _required(str),
        "image": _required(str),
        "container": _optional(str, ""),
        "namespace": _optional(str, "default"),
        "kubeContext": _optional(str, ""),
        "waitForRollout": _optional(bool, True),
        "rolloutTimeout": _optional(int, 300),
    },
    StepKind.NOTIFY: {
        "message": _required(str),
        "webhookUrl": _optional(str, ""),
        "status": _optional(str, "info"),
    },
    StepKind.CUSTOM: {
        "command": _required(str),
        "args": _optional(list, []),
        "workdir": _optional(str, "."),
        "allowedExitCodes": _optional(list, [0]),
    },
}


class ResolvedConfig(Mapping[str, Any]):
    """Validated, immutable step configuration."""

    def __init__(self, kind: StepKind, values: dict[str, Any]) -> None:
        self.kind = kind
        self._values = values

    def __getitem__(self, key: str) -> Any:
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"ResolvedConfig({self.kind.value}, {self._values!r})"

    def replace(self, values: dict[str, Any]) -> ResolvedConfig:
        """Copy with some values substituted (used for template expansion)."""
        return ResolvedConfig(self.kind, {**self._values, **values})

    def to_dict(self) -> dict[str, Any]:
        return copy.deepcopy(self._values)


class ParameterResolver:
    """Merges user configuration over per-kind defaults and validates it."""

    def __init__(self, table: Mapping[StepKind, Mapping[str, ParameterSpec]] | None = None) -> None:
        self._table = table if table is not None else DEFAULT_PARAMETERS

    def parameters(self, kind: StepKind) -> Mapping[str, ParameterSpec]:
        return self._table.get(kind, {})

    def resolve(
        self,
        kind: StepKind,
        user_config: Mapping[str, Any],
        step_name: str | None = None,
    ) -> ResolvedConfig:
        """Produce a validated configuration for a step.

        Args:
            kind: Step kind whose parameter table applies
            user_config: Values from the pipeline definition
            step_name: Step name, used only in error messages

        Returns:
            ResolvedConfig containing every declared parameter

        Raises:
            ConfigError: Unknown key, missing required key, or type mismatch
        """
        specs = self.parameters(kind)

        for key in user_config:
            if key not in specs:
                allowed = ", ".join(sorted(specs)) or "none"
                raise ConfigError(
                    ConfigErrorReason.UNKNOWN_KEY,
                    key,
                    f"unknown parameter '{key}' for {kind.value} (allowed: {allowed})",
                    step=step_name,
                )

        values: dict[str, Any] = {}
        for key, spec in specs.items():
            if key in user_config:
                value = user_config[key]
            elif spec.required:
                raise ConfigError(
                    ConfigErrorReason.MISSING_REQUIRED,
                    key,
                    f"missing required parameter '{key}' for {kind.value}",
                    step=step_name,
                )
            else:
                value = copy.deepcopy(spec.default)

            if not spec.accepts(value):
                raise ConfigError(
                    ConfigErrorReason.TYPE_MISMATCH,
                    key,
                    f"parameter '{key}' must be {_TYPE_NAMES.get(spec.type, spec.type.__name__)}, "
                    f"got {type(value).__name__}",
                    step=step_name,
                )
            values[key] = copy.deepcopy(value)

        return ResolvedConfig(kind, values)
