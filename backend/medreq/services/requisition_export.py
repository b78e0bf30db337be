from __future__ import annotations

from decimal import Decimal

from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter

from medreq.core.config import settings
from medreq.models.enums import RequisitionType, SignatureSlot
from medreq.services.requisition_queries import RequisitionDetail

BOLD = Font(bold=True)


def _autosize_columns(ws) -> None:
    for col in ws.columns:
        max_len = 0
        col_letter = get_column_letter(col[0].column)
        for cell in col:
            if cell.value is None:
                continue
            max_len = max(max_len, len(str(cell.value)))
        ws.column_dimensions[col_letter].width = min(max_len + 2, 60)


def _header(ws, headers: list[str]) -> None:
    ws.append(headers)
    for cell in ws[ws.max_row]:
        cell.font = BOLD


def _money(value: Decimal | None) -> float | None:
    return float(value) if value is not None else None


def _fmt_dt(value) -> str:
    return value.strftime("%Y-%m-%d %H:%M") if value else ""


def export_filename(detail: RequisitionDetail) -> str:
    req = detail.requisition
    return f"requisition_{req.type.value.lower()}_{str(req.id)[:8]}.xlsx"


def build_requisition_workbook(detail: RequisitionDetail) -> Workbook:
    req = detail.requisition
    names = detail.user_names

    wb = Workbook()
    ws = wb.active
    ws.title = "Summary"
    rows = [
        ("Requisition", str(req.id)),
        ("Type", req.type.value),
        ("Department", req.department.value),
        ("Requester", names.get(req.requester_id, "")),
        ("Status", req.status.value),
        (f"Total cost ({settings.currency_label})", _money(req.total_cost)),
        (f"Total paid ({settings.currency_label})", _money(detail.total_paid)),
        (f"Outstanding ({settings.currency_label})", _money(detail.outstanding_balance)),
        ("Created", _fmt_dt(req.created_at)),
        ("Updated", _fmt_dt(req.updated_at)),
    ]
    if req.queried_to is not None:
        rows.append(("Queried to", req.queried_to.value))
    for label, value in rows:
        ws.append([label, value])
        ws.cell(row=ws.max_row, column=1).font = BOLD

    signatures = req.signatures or {}
    if signatures:
        ws.append([])
        ws.append(["Signatures"])
        ws.cell(row=ws.max_row, column=1).font = BOLD
        for slot in SignatureSlot:
            entry = signatures.get(slot.value)
            if entry:
                ws.append([slot.value, entry.get("name", ""), entry.get("timestamp", "")])
    _autosize_columns(ws)

    if req.type == RequisitionType.HISTOLOGY_PAYMENT:
        items_ws = wb.create_sheet("Histology")
        _header(
            items_ws,
            [
                "Date",
                "Patient",
                "Hospital No",
                "Lab No",
                "Receipt / HMO / Coy",
                "Outsource Service",
                "Outsource Bills",
                "Internal Charge",
                "Retainership",
            ],
        )
        for item in detail.histology_items:
            items_ws.append(
                [
                    item.service_date.isoformat(),
                    item.patient_name,
                    item.hospital_no,
                    item.lab_no,
                    item.receipt_no,
                    item.outsource_service,
                    _money(item.outsource_bills),
                    _money(item.internal_charge),
                    item.retainership,
                ]
            )
    else:
        items_ws = wb.create_sheet("Items")
        _header(items_ws, ["#", "Item", "Quantity", "Description", "Supplier", "Unit cost", "Unit price", "Stock"])
        for idx, item in enumerate(detail.items, start=1):
            items_ws.append(
                [
                    idx,
                    item.name,
                    item.quantity,
                    item.description,
                    item.supplier or "",
                    _money(item.estimated_unit_cost),
                    _money(item.unit_price),
                    item.stock_level,
                ]
            )
    _autosize_columns(items_ws)

    pay_ws = wb.create_sheet("Payments")
    _header(pay_ws, ["Date", "Amount", "Recorded by", "Proof"])
    for payment in detail.payments:
        pay_ws.append(
            [
                payment.payment_date.isoformat(),
                _money(payment.amount),
                names.get(payment.recorded_by, ""),
                payment.proof_path or "",
            ]
        )
    _autosize_columns(pay_ws)

    log_ws = wb.create_sheet("Approval Log")
    _header(log_ws, ["When", "Who", "Action", "Comment"])
    for entry in detail.approval_log:
        log_ws.append([_fmt_dt(entry.created_at), names.get(entry.user_id, ""), entry.action.value, entry.comment or ""])
    _autosize_columns(log_ws)
    return wb
