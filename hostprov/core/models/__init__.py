"""
Domain models for hostprov.

All models are re-exported here for convenient access:

    from hostprov.core.models import DesiredConfig, HostFact, Step, StepOutcome
"""

from hostprov.core.models.action import Action, Receipt
from hostprov.core.models.config import (
    ContainersConfig,
    DesiredConfig,
    StorageConfig,
    TimeoutConfig,
)
from hostprov.core.models.credentials import CredentialRecord
from hostprov.core.models.host import Condition, FactValue, HostFact
from hostprov.core.models.outcome import PlanResult, StepOutcome, StepStatus
from hostprov.core.models.state import ProvisionState, RunRecord, StepState
from hostprov.core.models.step import Phase, PlannedStep, RecoveryPolicy, Step

__all__ = [
    # action.py
    "Action",
    "Receipt",
    # config.py
    "ContainersConfig",
    "DesiredConfig",
    "StorageConfig",
    "TimeoutConfig",
    # credentials.py
    "CredentialRecord",
    # host.py
    "Condition",
    "FactValue",
    "HostFact",
    # outcome.py
    "PlanResult",
    "StepOutcome",
    "StepStatus",
    # state.py
    "ProvisionState",
    "RunRecord",
    "StepState",
    # step.py
    "Phase",
    "PlannedStep",
    "RecoveryPolicy",
    "Step",
]
