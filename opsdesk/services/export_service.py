"""Spreadsheet export for invoices (openpyxl)."""

import io
import logging

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from opsdesk.services import organization_service

logger = logging.getLogger(__name__)

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

HEADER_FILL = PatternFill(start_color="1F2937", end_color="1F2937", fill_type="solid")
HEADER_FONT = Font(color="FFFFFF", bold=True, size=11)
THIN_BORDER = Border(
    left=Side(style="thin"),
    right=Side(style="thin"),
    top=Side(style="thin"),
    bottom=Side(style="thin"),
)
MONEY_FORMAT = "#,##0.00"


def _apply_header_style(ws, row: int, col_count: int) -> None:
    for col in range(1, col_count + 1):
        cell = ws.cell(row=row, column=col)
        cell.fill = HEADER_FILL
        cell.font = HEADER_FONT
        cell.border = THIN_BORDER
        cell.alignment = Alignment(horizontal="center", vertical="center")


def _auto_width(ws) -> None:
    """Size columns to content, capped at 60 chars."""
    for col in ws.columns:
        max_len = 0
        col_letter = get_column_letter(col[0].column)
        for cell in col:
            if cell.value:
                max_len = max(max_len, min(len(str(cell.value)), 60))
        ws.column_dimensions[col_letter].width = max(max_len + 4, 12)


def export_invoice_xlsx(invoice, user=None) -> io.BytesIO:
    """
    Build a one-sheet workbook for an invoice.
    Returns a BytesIO buffer ready for a Flask Response.

    Prices are left out when the invoice hides line item prices.
    """
    org = organization_service.get_current(user)
    wb = Workbook()
    ws = wb.active
    ws.title = "Invoice"

    ws["A1"] = f"Invoice {invoice.invoice_number}"
    ws["A1"].font = Font(size=16, bold=True)
    ws["A2"] = org.name if org else ""
    ws["A3"] = f"Client: {invoice.client.full_name}" if invoice.client else ""
    ws["A4"] = f"Due: {invoice.due_date.isoformat()}" if invoice.due_date else ""
    ws["C2"] = f"Status: {invoice.status}"

    row = 6
    show_prices = not invoice.hide_line_item_prices
    headers = ["Description", "Quantity"] + (["Price", "Line Total"] if show_prices else [])
    for col, header in enumerate(headers, 1):
        ws.cell(row=row, column=col, value=header)
    _apply_header_style(ws, row, len(headers))

    for item in invoice.line_items or []:
        row += 1
        quantity = float(item.get("quantity") or 0)
        price = float(item.get("price") or 0)
        ws.cell(row=row, column=1, value=item.get("description") or "")
        ws.cell(row=row, column=2, value=quantity)
        if show_prices:
            ws.cell(row=row, column=3, value=price).number_format = MONEY_FORMAT
            ws.cell(row=row, column=4, value=round(price * quantity, 2)).number_format = MONEY_FORMAT

    row += 2
    totals = [("Subtotal", invoice.amount)]
    if invoice.vat_amount:
        totals.append((f"VAT ({invoice.vat_rate:g}%)", invoice.vat_amount))
    totals.append(("Total", invoice.total))
    label_col = len(headers) - 1 if show_prices else 1
    for label, value in totals:
        ws.cell(row=row, column=label_col, value=label).font = Font(bold=True)
        ws.cell(row=row, column=label_col + 1, value=value).number_format = MONEY_FORMAT
        row += 1

    if invoice.notes:
        row += 1
        ws.cell(row=row, column=1, value=invoice.notes).alignment = Alignment(wrap_text=True)

    _auto_width(ws)

    buf = io.BytesIO()
    wb.save(buf)
    buf.seek(0)
    logger.info("Invoice %s exported to xlsx", invoice.invoice_number)
    return buf
