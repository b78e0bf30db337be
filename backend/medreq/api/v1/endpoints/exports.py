from __future__ import annotations

from io import BytesIO

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from openpyxl import Workbook
from sqlalchemy.ext.asyncio import AsyncSession

from medreq.api.deps import get_current_user
from medreq.api.v1.endpoints.requisitions import parse_uuid
from medreq.db.session import get_db
from medreq.models.user import User
from medreq.services.requisition_export import build_requisition_workbook, export_filename
from medreq.services.requisition_queries import get_requisition_detail

router = APIRouter()


def _excel_response(filename: str, wb: Workbook) -> StreamingResponse:
    output = BytesIO()
    wb.save(output)
    output.seek(0)
    return StreamingResponse(
        output,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@router.get("/requisitions/{requisition_id}")
async def export_requisition(
    requisition_id: str,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> StreamingResponse:
    detail = await get_requisition_detail(db, parse_uuid(requisition_id))
    return _excel_response(export_filename(detail), build_requisition_workbook(detail))
