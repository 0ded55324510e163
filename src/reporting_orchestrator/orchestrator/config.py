"""Configuration for the reporting workflow engine.

Configuration is loaded from:
- environment variables
- and a local `.env` file (if present)

Nothing here is required: without endpoint URLs the engine still sequences and
runs plans, and the baseline actions that need a remote service record a
failed outcome flag instead.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from reporting_orchestrator.orchestrator.workflow.registry import BASE_REPORTING_BUNDLE_PROFILE


class WorkflowSettings(BaseSettings):
    """Settings for the reporting workflow engine.

    Notes:
        Pydantic-settings supports overriding the env file in tests via:
        `WorkflowSettings(_env_file=path_to_env)`.
    """

    log_level: str = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
        description="Root logging level",
    )

    state_path: Path = Field(
        default=Path("workflow_state"),
        validation_alias="REPORTING_STATE_PATH",
        description="Directory where execution contexts and completed reports are persisted",
    )

    base_profile: str = Field(
        default=BASE_REPORTING_BUNDLE_PROFILE,
        validation_alias="REPORTING_BASE_PROFILE",
        description="Reporting bundle profile the baseline actions are registered under",
    )

    halt_on_action_error: bool = Field(
        default=True,
        validation_alias="REPORTING_HALT_ON_ACTION_ERROR",
        description=(
            "If true, a run stops in the 'failed' state when an action raises, and resuming "
            "retries that step. If false, the failure is recorded and the run moves on."
        ),
    )

    source_url: str = Field(
        default="",
        validation_alias="REPORTING_SOURCE_URL",
        description="FHIR base URL of the EHR the data is read from",
    )
    destination_url: str = Field(
        default="",
        validation_alias="REPORTING_DESTINATION_URL",
        description="FHIR base URL reports are submitted to",
    )
    data_trust_url: str = Field(
        default="",
        validation_alias="REPORTING_DATA_TRUST_URL",
        description="Base URL of the data trust service (de-identification etc.)",
    )
    access_token: str = Field(
        default="",
        validation_alias="REPORTING_ACCESS_TOKEN",
        description="Bearer token sent to the source, destination and data trust services",
    )
    http_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        validation_alias="REPORTING_HTTP_TIMEOUT_SECONDS",
        description="Timeout applied to every outbound HTTP request",
    )

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def contexts_state_file(self) -> Path:
        """Path where execution contexts are persisted."""

        return self.state_path / "contexts.json"

    @property
    def completed_reports_file(self) -> Path:
        """Path where bundles of completed reporting workflows are kept."""

        return self.state_path / "completed_reports.json"
