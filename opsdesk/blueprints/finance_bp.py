"""
Finance Blueprint — invoices, expenses and the revenue summary (admin only).

Endpoints:
  GET    /api/v1/invoices                     — List (?status, ?client_id, ?project_id)
  POST   /api/v1/invoices                     — Create (proposal_id → generated from phase)
  GET    /api/v1/invoices/next-number         — Next INV-#### number
  GET    /api/v1/invoices/:id                 — Detail
  PUT    /api/v1/invoices/:id                 — Update; syncs the linked phase
  DELETE /api/v1/invoices/:id                 — Delete
  GET    /api/v1/invoices/:id/export          — .xlsx download
  POST   /api/v1/proposals/:id/invoice        — Generate an invoice from a phase

  GET    /api/v1/expenses                     — List (?project_id, ?category)
  POST   /api/v1/expenses                     — Create
  PUT    /api/v1/expenses/:id                 — Update
  DELETE /api/v1/expenses/:id                 — Delete

  GET    /api/v1/finances/summary             — Revenue, expenses, profit, pending
"""

from datetime import datetime, timezone

from flask import Blueprint, Response, jsonify, request

from opsdesk.blueprints import json_body
from opsdesk.middleware.permission_required import current_user, require_admin
from opsdesk.services import export_service, finance_service

finance_bp = Blueprint("finance", __name__, url_prefix="/api/v1")


# ═══════════════════════════════════════════════════════════════
# Invoices
# ═══════════════════════════════════════════════════════════════
@finance_bp.route("/invoices", methods=["GET"])
@require_admin
def list_invoices():
    invoices = finance_service.list_invoices(
        status=request.args.get("status"),
        client_id=request.args.get("client_id"),
        project_id=request.args.get("project_id"),
    )
    return jsonify({"items": [i.to_dict() for i in invoices], "total": len(invoices)}), 200


@finance_bp.route("/invoices", methods=["POST"])
@require_admin
def create_invoice():
    return jsonify(finance_service.create_invoice(json_body(), current_user()).to_dict()), 201


@finance_bp.route("/invoices/next-number", methods=["GET"])
@require_admin
def next_invoice_number():
    return jsonify({"invoice_number": finance_service.next_invoice_number()}), 200


@finance_bp.route("/invoices/<invoice_id>", methods=["GET"])
@require_admin
def get_invoice(invoice_id):
    return jsonify(finance_service.get_invoice(invoice_id).to_dict()), 200


@finance_bp.route("/invoices/<invoice_id>", methods=["PUT", "PATCH"])
@require_admin
def update_invoice(invoice_id):
    invoice = finance_service.update_invoice(invoice_id, json_body(), current_user())
    return jsonify(invoice.to_dict()), 200


@finance_bp.route("/invoices/<invoice_id>", methods=["DELETE"])
@require_admin
def delete_invoice(invoice_id):
    finance_service.delete_invoice(invoice_id)
    return jsonify({"deleted": True, "id": invoice_id}), 200


@finance_bp.route("/invoices/<invoice_id>/export", methods=["GET"])
@require_admin
def export_invoice(invoice_id):
    invoice = finance_service.get_invoice(invoice_id)
    content = export_service.export_invoice_xlsx(invoice, current_user())
    date_str = datetime.now(timezone.utc).strftime("%Y%m%d")
    filename = f"{invoice.invoice_number}_{date_str}.xlsx"
    return Response(
        content.getvalue(),
        mimetype=export_service.XLSX_MIMETYPE,
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@finance_bp.route("/proposals/<proposal_id>/invoice", methods=["POST"])
@require_admin
def generate_invoice(proposal_id):
    invoice = finance_service.generate_from_proposal(proposal_id, json_body(), current_user())
    return jsonify(invoice.to_dict()), 201


# ═══════════════════════════════════════════════════════════════
# Expenses
# ═══════════════════════════════════════════════════════════════
@finance_bp.route("/expenses", methods=["GET"])
@require_admin
def list_expenses():
    expenses = finance_service.list_expenses(
        project_id=request.args.get("project_id"), category=request.args.get("category"),
    )
    return jsonify({"items": [e.to_dict() for e in expenses], "total": len(expenses)}), 200


@finance_bp.route("/expenses", methods=["POST"])
@require_admin
def create_expense():
    return jsonify(finance_service.create_expense(json_body(), current_user()).to_dict()), 201


@finance_bp.route("/expenses/<expense_id>", methods=["PUT", "PATCH"])
@require_admin
def update_expense(expense_id):
    return jsonify(finance_service.update_expense(expense_id, json_body()).to_dict()), 200


@finance_bp.route("/expenses/<expense_id>", methods=["DELETE"])
@require_admin
def delete_expense(expense_id):
    finance_service.delete_expense(expense_id)
    return jsonify({"deleted": True, "id": expense_id}), 200


# ═══════════════════════════════════════════════════════════════
# Summary
# ═══════════════════════════════════════════════════════════════
@finance_bp.route("/finances/summary", methods=["GET"])
@require_admin
def finance_summary():
    return jsonify(finance_service.summary()), 200
