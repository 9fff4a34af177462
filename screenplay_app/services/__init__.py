"""Service layer helpers for the screenplay formatting workflow."""

from __future__ import annotations

from .formatting import (  # noqa: F401
    FormattingOrchestrator,
    FormattingSnapshot,
    FormattingState,
    get_formatting_orchestrator,
)

__all__ = [
    "FormattingOrchestrator",
    "FormattingSnapshot",
    "FormattingState",
    "get_formatting_orchestrator",
]
