"""Step registry mapping step kinds to executors."""

import logging

from conveyor.errors import ConveyorError, StepNotFoundError
from conveyor.models.pipeline import StepKind
from conveyor.pipeline.base import StepExecutor

logger = logging.getLogger(__name__)


class StepRegistry:
    """Process-wide table of step executors.

    Executors are registered at startup. Once frozen (the engine freezes
    the registry when a run starts) no further registration is allowed.
    """

    def __init__(self) -> None:
        self._executors: dict[StepKind, StepExecutor] = {}
        self._frozen = False

    def register(self, kind: StepKind, executor: StepExecutor) -> None:
        """Register the executor for a step kind."""
        if self._frozen:
            raise ConveyorError(f"Registry is frozen; cannot register '{kind.value}'")
        if kind in self._executors:
            raise ConveyorError(f"Step kind already registered: {kind.value}")
        self._executors[kind] = executor
        logger.debug(f"Registered step executor: {kind.value} -> {type(executor).__name__}")

    def lookup(self, kind: StepKind) -> StepExecutor:
        """Get the executor for a step kind."""
        executor = self._executors.get(kind)
        if executor is None:
            raise StepNotFoundError(f"No executor registered for step kind '{kind.value}'")
        return executor

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def list_kinds(self) -> list[tuple[str, str]]:
        """List registered kinds as (kind, description) tuples."""
        return [(kind.value, ex.description) for kind, ex in self._executors.items()]

    def __contains__(self, kind: StepKind) -> bool:
        return kind in self._executors
