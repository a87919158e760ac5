"""
Error taxonomy for provisioning runs.

Adapters never raise; the executor turns failed receipts and unmet
postconditions into these exceptions internally, applies the step's
recovery policy, and records the class name as the outcome's
``error_kind``.
"""

from __future__ import annotations


class ProvisionError(Exception):
    """Base class: something went wrong with a specific step."""

    def __init__(self, step_id: str, message: str, output: str = ""):
        super().__init__(f"[{step_id}] {message}")
        self.step_id = step_id
        self.message = message
        self.output = output


class PreconditionUnknown(ProvisionError):
    """The probe could not determine state; the step is attempted anyway."""


class ActionFailed(ProvisionError):
    """An external command exited non-zero."""


class PostconditionUnmet(ProvisionError):
    """The action reported success but verification failed."""


class FatalDependencyMissing(ProvisionError):
    """A required external tool is absent; retrying cannot help."""


class PlanError(ValueError):
    """The step graph is invalid (unknown dependency, cycle, duplicate id)."""
