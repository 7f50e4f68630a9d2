"""
Startup Preflight Checks
=========================

Validates that the Trello credentials and list configuration are present
**before** the server starts accepting webhooks.

Called from ``server.py`` during the ``@app.on_event("startup")`` hook.
Any CRITICAL failure raises ``SystemExit`` so the process dies immediately
rather than answering every webhook with a 500.

Usage::

    from backlog_sync.preflight import run_preflight_checks

    @app.on_event("startup")
    async def startup_event():
        run_preflight_checks()   # dies if critical vars missing
        ...
"""

import logging
import os
import sys
from typing import Dict, List, Tuple

logger = logging.getLogger(__name__)


# =========================================================================
# Environment variable definitions
# =========================================================================

# (var_name, is_critical, description)
# CRITICAL = server should refuse to start
# WARNING  = log a warning but continue (defaults apply)
_ENV_REQUIREMENTS: List[Tuple[str, bool, str]] = [
    # --- Critical: no board call can succeed without these ---
    ("TRELLO_API_KEY", True, "Required for every Trello API call"),
    ("TRELLO_BACKLOG_TOKEN", True, "Required for every Trello API call"),

    # --- Warning: defaults are used ---
    ("BACKLOG_LIST_NAME", False, "Backlog list name (defaults to 'backlog')"),
    ("BACKLOG_WIP_LISTS", False, "Work-in-progress list names (defaults to \"today's tasks\")"),
    ("BACKLOG_DONE_LISTS", False, "Done list names (defaults to 'done today!')"),
]


def run_preflight_checks(
    fail_on_critical: bool = True,
) -> Dict[str, bool]:
    """
    Validate all required environment variables at startup.

    Parameters
    ----------
    fail_on_critical : bool
        If ``True`` (default), raises ``SystemExit(1)`` when any critical
        variable is missing.  Set to ``False`` in tests.

    Returns
    -------
    dict
        Mapping of ``{var_name: is_set}`` for all checked variables.
    """
    logger.info("Running preflight checks...")

    results: Dict[str, bool] = {}
    critical_missing: List[str] = []
    warning_missing: List[str] = []

    for var_name, is_critical, description in _ENV_REQUIREMENTS:
        value = os.getenv(var_name)
        is_set = bool(value and value.strip())
        results[var_name] = is_set

        if not is_set:
            if is_critical:
                critical_missing.append(var_name)
                logger.critical(
                    "PREFLIGHT FAIL: %s is not set - %s",
                    var_name, description,
                )
            else:
                warning_missing.append(var_name)
                logger.info(
                    "PREFLIGHT: %s is not set - %s",
                    var_name, description,
                )

    total = len(_ENV_REQUIREMENTS)
    passed = sum(1 for v in results.values() if v)

    if critical_missing:
        logger.critical(
            "PREFLIGHT FAILED: %d/%d vars set. "
            "Missing critical: %s",
            passed, total, ", ".join(critical_missing),
        )
        if fail_on_critical:
            sys.exit(1)
    elif warning_missing:
        logger.info(
            "PREFLIGHT PASSED WITH DEFAULTS: %d/%d vars set. "
            "Using defaults for: %s",
            passed, total, ", ".join(warning_missing),
        )
    else:
        logger.info(
            "PREFLIGHT PASSED: All %d environment variables are set", total,
        )

    return results
