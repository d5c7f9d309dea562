"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in opsdesk/__init__.py with no default limits;
this module applies granular limits per route category.

Usage:
    from opsdesk.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

AUTH_LIMIT = "20/minute"
WRITE_LIMIT = "120/minute"
READ_LIMIT = "300/minute"

# Blueprints that mostly mutate state
WRITE_BLUEPRINTS = (
    "clients", "projects", "proposals", "tasks", "chat",
    "tickets", "credentials", "finance", "reminders", "team",
)

# Read-focused / polled blueprints
READ_BLUEPRINTS = ("dashboard", "audit", "notifications", "realtime")


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Auth endpoints:   20/minute  (credential stuffing / PIN guessing)
        - Write blueprints: 120/minute
        - Read blueprints:  300/minute (SPA polling)
        - Health check:     exempt

    Rate limiting is disabled in testing mode.
    """

    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    bp = app.blueprints.get("auth")
    if bp:
        limiter.limit(AUTH_LIMIT)(bp)

    for bp_name in WRITE_BLUEPRINTS:
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(WRITE_LIMIT)(bp)

    for bp_name in READ_BLUEPRINTS:
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(READ_LIMIT)(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info(
        "Rate limiter configured — auth: %s, write: %s, read: %s",
        AUTH_LIMIT, WRITE_LIMIT, READ_LIMIT,
    )
