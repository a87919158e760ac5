"""Planning and execution of provisioning steps."""

from hostprov.core.engine.executor import DRY_RUN_MESSAGE, StepExecutor, generate_run_id
from hostprov.core.engine.planner import order_steps, plan, required_facts, validate_steps

__all__ = [
    "DRY_RUN_MESSAGE",
    "StepExecutor",
    "generate_run_id",
    "order_steps",
    "plan",
    "required_facts",
    "validate_steps",
]
