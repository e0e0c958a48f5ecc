"""External tool adapters for Conveyor."""

from conveyor.tools.adapter import CancelToken, ToolAdapter, ToolResult
from conveyor.tools.docker import DockerCLI
from conveyor.tools.git import GitCLI
from conveyor.tools.kubectl import KubectlCLI

__all__ = ["CancelToken", "ToolAdapter", "ToolResult", "DockerCLI", "GitCLI", "KubectlCLI"]
