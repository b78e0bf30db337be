from __future__ import annotations

from fastapi import APIRouter, Depends, File, UploadFile

from medreq.api.deps import require_roles
from medreq.models.enums import Role
from medreq.models.user import User
from medreq.schemas.extraction import ExtractedItemsOut
from medreq.services.invoice_extraction import extract_invoice_items

router = APIRouter()


@router.post("/extract-invoice", response_model=ExtractedItemsOut)
async def extract_invoice(
    file: UploadFile = File(...),
    user: User = Depends(require_roles([Role.LAB_ADMIN, Role.PHARMACY_ADMIN])),
) -> ExtractedItemsOut:
    items, warnings = await extract_invoice_items(
        filename=file.filename or "invoice",
        content_type=file.content_type or "",
        data=await file.read(),
    )
    return ExtractedItemsOut(items=items, warnings=warnings)
