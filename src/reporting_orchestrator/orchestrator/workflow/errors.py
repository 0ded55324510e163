"""Error taxonomy for the reporting workflow engine.

Configuration errors are raised while building, sequencing or resolving a plan,
before any action runs. Errors discovered once a run is in flight never leave
the executor; they are logged and recorded on the context instead.
"""

from __future__ import annotations


class WorkflowError(Exception):
    """Base class for all workflow engine errors."""


class PlanConfigurationError(WorkflowError, ValueError):
    """A plan cannot be executed as declared."""


class UnknownDurationUnitError(PlanConfigurationError):
    pass


class InvalidDurationError(PlanConfigurationError):
    pass


class UnsupportedRelationshipError(PlanConfigurationError):
    pass


class UnknownActionReferenceError(PlanConfigurationError):
    pass


class DuplicateActionIdError(PlanConfigurationError):
    pass


class ReservedActionIdError(PlanConfigurationError):
    """An action id collides with the delay node naming scheme."""


class CyclicPlanError(PlanConfigurationError):
    """The related-action graph (delay nodes included) contains a cycle."""

    def __init__(self, plan_id: str | None, cycle: list[str] | None = None) -> None:
        self.plan_id = plan_id
        self.cycle = cycle or []
        detail = f": {' -> '.join(self.cycle)}" if self.cycle else ""
        super().__init__(f"PlanDefinition {plan_id} has cyclic action dependencies{detail}")


class MissingCreateReportActionError(PlanConfigurationError):
    pass


class MissingReportProfileError(PlanConfigurationError):
    pass


class RegistryError(WorkflowError):
    pass


class ProfileAlreadyRegisteredError(RegistryError):
    pass


class ActionAlreadyRegisteredError(RegistryError):
    pass


class UnknownProfileError(RegistryError, KeyError):
    pass


class ContextNotFoundError(WorkflowError, KeyError):
    pass


class IllegalTransitionError(WorkflowError, ValueError):
    pass


class StaleContextError(WorkflowError):
    """A checkpoint would move a persisted context back to an earlier step."""
