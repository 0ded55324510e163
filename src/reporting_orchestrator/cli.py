"""Console entrypoint shim.

The CLI is implemented in `reporting_orchestrator.orchestrator.main`.
"""

from __future__ import annotations

from reporting_orchestrator.orchestrator.main import main

__all__ = ["main"]


if __name__ == "__main__":
    raise SystemExit(main())
