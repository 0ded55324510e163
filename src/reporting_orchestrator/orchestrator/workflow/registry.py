"""Action registry: (bundle profile, action code) -> action implementation.

Each reporting standard identifies its actions by the profile of the bundle it
reports. The base profile is registered once at startup; additional profiles
register separately and may extend another profile instead of copying it.

The registry is an explicit object. Callers construct one and pass it to the
executor rather than reaching for a module-level mapping.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Awaitable, Mapping
from typing import TYPE_CHECKING, Protocol

from .errors import (
    ActionAlreadyRegisteredError,
    ProfileAlreadyRegisteredError,
    UnknownProfileError,
)

if TYPE_CHECKING:
    from .context import ExecutionContext

logger = logging.getLogger(__name__)

BASE_REPORTING_BUNDLE_PROFILE = (
    "http://hl7.org/fhir/us/medmorph/StructureDefinition/us-ph-reporting-bundle"
)


class ActionCallable(Protocol):
    """A unit of work run against the execution context.

    It may mutate the context in place and may return an awaitable; the
    executor waits for it before moving on.
    """

    def __call__(self, context: ExecutionContext) -> Awaitable[None] | None: ...


class ActionRegistry:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._actions: dict[str, dict[str, ActionCallable]] = {}
        self._parents: dict[str, str | None] = {}

    def register_profile(
        self,
        profile: str,
        actions: Mapping[str, ActionCallable],
        *,
        extends: str | None = None,
    ) -> None:
        """Register the action set for ``profile``.

        Args:
            profile: Reporting bundle profile URI.
            actions: Action code -> implementation.
            extends: Optional previously registered profile whose actions are
                used for codes ``actions`` does not define.

        Raises:
            ProfileAlreadyRegisteredError: ``profile`` was registered before.
            UnknownProfileError: ``extends`` names an unregistered profile.
        """

        with self._lock:
            if profile in self._actions:
                raise ProfileAlreadyRegisteredError(f"Profile already registered: {profile}")
            if extends is not None and extends not in self._actions:
                raise UnknownProfileError(f"Cannot extend unregistered profile: {extends}")
            self._actions[profile] = dict(actions)
            self._parents[profile] = extends

        logger.info(
            "Registered action profile",
            extra={"profile": profile, "codes": sorted(actions), "extends": extends},
        )

    def register_action(self, profile: str, code: str, action: ActionCallable) -> None:
        """Add a single code to an already registered profile."""

        with self._lock:
            actions = self._actions.get(profile)
            if actions is None:
                raise UnknownProfileError(f"Profile not registered: {profile}")
            if code in actions:
                raise ActionAlreadyRegisteredError(
                    f"Action {code!r} already registered for profile {profile}"
                )
            actions[code] = action

    def lookup(self, profile: str, code: str | None) -> ActionCallable | None:
        """Return the implementation for ``code`` under ``profile``, or None."""

        if code is None:
            return None
        current: str | None = profile
        visited: set[str] = set()
        while current is not None and current not in visited:
            visited.add(current)
            actions = self._actions.get(current)
            if actions is None:
                return None
            found = actions.get(code)
            if found is not None:
                return found
            current = self._parents.get(current)
        return None

    def __contains__(self, profile: object) -> bool:
        return profile in self._actions
