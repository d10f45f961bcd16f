"""SQLite repositories for areas, instances, activation modes, links and executions."""

from .activation_modes import ActivationModeRepository
from .areas import ActionDefinitionRepository, AreaRepository
from .executions import ExecutionRepository
from .instances import ActionInstanceRepository
from .links import ActionLinkRepository
from .schema import SCHEMA, init_schema

__all__ = [
    "SCHEMA",
    "init_schema",
    "AreaRepository",
    "ActionDefinitionRepository",
    "ActionInstanceRepository",
    "ActivationModeRepository",
    "ActionLinkRepository",
    "ExecutionRepository",
]
