"""
OpsDesk
Blueprint registry.
"""

from flask import request


def json_body() -> dict:
    """Request JSON as a dict; non-object bodies read as empty."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def register_blueprints(app):
    from opsdesk.blueprints.audit_bp import audit_bp
    from opsdesk.blueprints.auth_bp import auth_bp
    from opsdesk.blueprints.chat_bp import chat_bp
    from opsdesk.blueprints.client_bp import client_bp
    from opsdesk.blueprints.credential_bp import credential_bp
    from opsdesk.blueprints.dashboard_bp import dashboard_bp
    from opsdesk.blueprints.finance_bp import finance_bp
    from opsdesk.blueprints.health_bp import health_bp
    from opsdesk.blueprints.notification_bp import notification_bp
    from opsdesk.blueprints.project_bp import project_bp
    from opsdesk.blueprints.proposal_bp import proposal_bp
    from opsdesk.blueprints.realtime_bp import realtime_bp
    from opsdesk.blueprints.reminder_bp import reminder_bp
    from opsdesk.blueprints.task_bp import task_bp
    from opsdesk.blueprints.team_bp import team_bp
    from opsdesk.blueprints.ticket_bp import ticket_bp

    for bp in (
        health_bp, auth_bp, team_bp, client_bp, project_bp, proposal_bp,
        task_bp, chat_bp, notification_bp, ticket_bp, credential_bp,
        finance_bp, reminder_bp, audit_bp, dashboard_bp, realtime_bp,
    ):
        app.register_blueprint(bp)
