"""AREA Engine Error Hierarchy.

Structured exception types for the trigger and orchestration core.
"""

from __future__ import annotations


class AreaEngineError(Exception):
    """Base error for all AREA engine exceptions."""

    code = "AREA_ENGINE_ERROR"

    def __init__(self, message: str, details: dict = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


# Trigger Errors
class TriggerError(AreaEngineError):
    """Triggering an action instance failed."""

    code = "TRIGGER_ERROR"

    def __init__(self, message: str, instance_id: str = None, cause: Exception = None):
        details = {"instance_id": instance_id}
        if cause:
            details["cause"] = str(cause)
        super().__init__(message, details)
        self.instance_id = instance_id
        self.cause = cause


class ChainError(AreaEngineError):
    """Reaction chain processing failed."""

    code = "CHAIN_ERROR"

    def __init__(self, message: str, area_id: str = None, cause: Exception = None):
        details = {"area_id": area_id}
        if cause:
            details["cause"] = str(cause)
        super().__init__(message, details)
        self.area_id = area_id
        self.cause = cause


class EventPublishError(AreaEngineError):
    """Publishing an area event failed."""

    code = "EVENT_PUBLISH_ERROR"

    def __init__(self, message: str, stream: str = None, execution_id: str = None):
        super().__init__(message, {"stream": stream, "execution_id": execution_id})
        self.stream = stream
        self.execution_id = execution_id


# Scheduling Errors
class SchedulingError(AreaEngineError):
    """An activation mode could not be scheduled."""

    code = "SCHEDULING_ERROR"

    def __init__(self, message: str, activation_mode_id: str = None):
        super().__init__(message, {"activation_mode_id": activation_mode_id})
        self.activation_mode_id = activation_mode_id


# Validation Errors
class ValidationError(AreaEngineError):
    """Data validation failed."""

    code = "VALIDATION"


class ActivationModeValidationError(ValidationError):
    """Activation mode violates its instance constraints."""

    def __init__(self, message: str, mode_type: str = None, action_instance_id: str = None):
        super().__init__(
            message, {"mode_type": mode_type, "action_instance_id": action_instance_id}
        )
        self.mode_type = mode_type
        self.action_instance_id = action_instance_id


# Lookup Errors
class NotFoundError(AreaEngineError):
    """Requested entity does not exist."""

    code = "NOT_FOUND"

    def __init__(self, message: str, entity: str = None, entity_id: str = None):
        super().__init__(message, {"entity": entity, "entity_id": entity_id})
        self.entity = entity
        self.entity_id = entity_id


class ExecutionNotFoundError(NotFoundError):
    """Execution does not exist."""

    def __init__(self, execution_id: str):
        super().__init__(
            f"Execution {execution_id} not found", entity="execution", entity_id=execution_id
        )
