"""Pipeline orchestration core for Conveyor."""

from conveyor.pipeline.base import StepExecutor
from conveyor.pipeline.context import ExecutionContext
from conveyor.pipeline.executor import PipelineExecutor
from conveyor.pipeline.registry import StepRegistry
from conveyor.pipeline.resolver import ParameterResolver, ParameterSpec, ResolvedConfig
from conveyor.pipeline.tracker import StateTracker

__all__ = [
    "StepExecutor",
    "ExecutionContext",
    "PipelineExecutor",
    "StepRegistry",
    "ParameterResolver",
    "ParameterSpec",
    "ResolvedConfig",
    "StateTracker",
]
