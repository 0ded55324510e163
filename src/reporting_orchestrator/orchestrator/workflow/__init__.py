"""Workflow domain concepts.

This package introduces first-class types for:
- Plans and their actions (PlanDefinition)
- Dependency graphs and the execution sequence derived from them
- Profile-scoped action registries
- The persisted execution context and its state machine

Sequencing is deterministic, so a context can be checkpointed after every step
and resumed at the exact step it stopped on.
"""

__all__: list[str] = []
