"""
Command handlers organized by domain.

All handlers follow the signature: (ctx, arguments) -> CommandResult
"""

from .inspection import INSPECTION_HANDLERS
from .interaction import INTERACTION_HANDLERS
from .navigation import NAVIGATION_HANDLERS
from .tabs import TAB_HANDLERS

# Aggregate all handlers
ALL_HANDLERS: dict[str, tuple] = {
    **NAVIGATION_HANDLERS,
    **INTERACTION_HANDLERS,
    **INSPECTION_HANDLERS,
    **TAB_HANDLERS,
}

__all__ = [
    "ALL_HANDLERS",
    "INSPECTION_HANDLERS",
    "INTERACTION_HANDLERS",
    "NAVIGATION_HANDLERS",
    "TAB_HANDLERS",
]
