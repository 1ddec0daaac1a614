"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in bmt/__init__.py with no default limits;
this module applies the write limit to the mutation blueprints.

Usage:
    from bmt.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

WRITE_BLUEPRINTS = ("evaluation", "template", "followup")


def init_rate_limits(app, limiter):
    """
    Apply WRITE_RATE_LIMIT (per remote IP) to the mutation blueprints.

    Health checks are exempt. Rate limiting is disabled in testing mode or
    when RATELIMIT_ENABLED is false.
    """
    if app.config.get("TESTING") or not app.config.get("RATELIMIT_ENABLED", True):
        app.logger.info("Rate limiter disabled")
        return

    write_limit = app.config.get("WRITE_RATE_LIMIT", "60/minute")
    for bp_name in WRITE_BLUEPRINTS:
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(write_limit)(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info("Rate limiter configured: write=%s", write_limit)
