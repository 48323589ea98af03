"""
Rate limiting configuration.

The Limiter instance is created in taskhub/__init__.py with no default
limits; this module applies limits per blueprint.

Usage:
    from taskhub.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

LOGIN_LIMIT = "20 per 15 minutes"
WRITE_LIMIT = "120/minute"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - auth (login, impersonation):  20 per 15 minutes
        - tasks / justifications:       120/minute
        - health:                       exempt

    Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    bp = app.blueprints.get("auth_bp")
    if bp:
        limiter.limit(LOGIN_LIMIT, methods=["POST"])(bp)

    for bp_name in ("task_bp", "justification_bp"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(WRITE_LIMIT)(bp)

    bp = app.blueprints.get("health_bp")
    if bp:
        limiter.exempt(bp)

    app.logger.info("Rate limiter configured (auth: %s, api: %s)", LOGIN_LIMIT, WRITE_LIMIT)
