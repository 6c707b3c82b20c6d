"""Workspace file tools exposed to the inference backend."""
from .file_tools import MutationPlan, build_default_registry, plan_mutation
from .registry import Tool, ToolContext, ToolKind, ToolRegistry, is_error_result, tool_error
from .sandbox import resolve_workspace_path, workspace_relative

__all__ = [
    "MutationPlan",
    "build_default_registry",
    "plan_mutation",
    "Tool",
    "ToolContext",
    "ToolKind",
    "ToolRegistry",
    "is_error_result",
    "tool_error",
    "resolve_workspace_path",
    "workspace_relative",
]
