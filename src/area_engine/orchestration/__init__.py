"""Trigger, reaction chain and activation orchestration."""

from .chain import ChainStepResult, ChainStepStatus, ReactionChainService
from .mapping import DataMappingService
from .orchestrator import ActivationOrchestrator
from .trigger import ExecutionTriggerService

__all__ = [
    "ActivationOrchestrator",
    "ChainStepResult",
    "ChainStepStatus",
    "DataMappingService",
    "ExecutionTriggerService",
    "ReactionChainService",
]
