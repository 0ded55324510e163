from __future__ import annotations

from .errors import MissingCreateReportActionError, MissingReportProfileError
from .plan import Plan

CREATE_REPORT_CODE = "create-report"
BUNDLE_OUTPUT_TYPE = "Bundle"


def find_profile(plan: Plan) -> str:
    """Find the target profile used when generating the report bundle.

    The profile is the first profile on the ``Bundle`` output of the plan's
    ``create-report`` action. There is no fallback profile.
    """

    create_report = next(
        (a for a in plan.action if a.action_code == CREATE_REPORT_CODE), None
    )
    if create_report is None:
        raise MissingCreateReportActionError(
            f"PlanDefinition {plan.id} has no action with code {CREATE_REPORT_CODE!r}"
        )

    for output in create_report.output:
        if output.type == BUNDLE_OUTPUT_TYPE and output.profile:
            return output.profile[0]

    raise MissingReportProfileError(
        f"PlanDefinition {plan.id} does not specify a profile for report bundle"
    )
