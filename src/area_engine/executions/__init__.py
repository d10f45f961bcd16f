"""Execution lifecycle."""

from .service import CompletionListener, ExecutionService

__all__ = ["CompletionListener", "ExecutionService"]
