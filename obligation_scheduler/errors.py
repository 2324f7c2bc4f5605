"""Exceptions raised by the scheduling engine. Routes translate them to HTTP errors."""
from typing import Any, Dict, List, Optional


class SchedulingError(Exception):
    """Base class for engine errors."""


class PatternValidationError(SchedulingError):
    """Pattern payload rejected before it reached the store."""

    def __init__(self, message: str, errors: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.errors = errors or []


class ComputationError(SchedulingError):
    """A pattern never yields a qualifying date within the scan limit."""


class GenerationFailure(SchedulingError):
    """Generation failed for a single template; the batch carries on."""

    def __init__(self, template_id: str, message: str):
        super().__init__(f"template {template_id}: {message}")
        self.template_id = template_id
        self.message = message


class SchedulerFault(SchedulingError):
    """Timer or last-run bookkeeping failed; retried on the next tick."""


class NotFoundError(SchedulingError):
    pass
