"""
Command layer: handler registry, per-invocation context and result types.
"""

from .context import CommandContext
from .registry import CommandRegistry, create_default_registry
from .types import CommandResult

__all__ = ["CommandContext", "CommandRegistry", "CommandResult", "create_default_registry"]
