"""MedMorph reporting orchestrator.

Runs PlanDefinition-driven public health reporting workflows:
- actions sequenced from their before-start dependencies, with timed delays
- action implementations resolved through reporting bundle profiles
- execution contexts checkpointed to local JSON so runs can be resumed
"""

__version__ = "0.1.0"

from reporting_orchestrator.orchestrator.config import WorkflowSettings

__all__ = ["__version__", "WorkflowSettings"]
