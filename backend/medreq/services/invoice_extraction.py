from __future__ import annotations

import base64
import io
import json
import logging
import re
from decimal import Decimal, InvalidOperation
from typing import Any

import httpx
import pdfplumber
from pydantic import ValidationError

from medreq.core.config import settings
from medreq.core.errors import CollaboratorFailure, InvalidRequest
from medreq.schemas.requisition import LineItemIn

logger = logging.getLogger("medreq_api.invoice_extraction")

IMAGE_TYPES = {"image/jpeg", "image/png", "image/webp"}
PDF_TYPE = "application/pdf"

EXTRACTION_PROMPT = (
    "You read supplier invoices for a medical laboratory and pharmacy. "
    "Return a JSON object with a single key \"items\": a list of line items. "
    "Each item has: name (string), quantity (integer), description (string), "
    "supplier (string), unitPrice (number), estimatedUnitCost (number), stockLevel (integer). "
    "Leave out fields you cannot read. Do not invent items."
)

DEFAULT_NAME = "Unknown Item"


def _normalize_text(text: str) -> str:
    normalized = text.replace("\u00a0", " ")
    return re.sub(r"[ \t]+", " ", normalized)


def extract_lines(pdf_bytes: bytes) -> list[str]:
    with pdfplumber.open(io.BytesIO(pdf_bytes)) as pdf:
        lines: list[str] = []
        for page in pdf.pages:
            text = _normalize_text(page.extract_text() or "")
            for line in text.splitlines():
                stripped = line.strip()
                if stripped:
                    lines.append(stripped)
        return lines


def _to_decimal(value: Any) -> Decimal:
    if isinstance(value, bool) or value is None:
        return Decimal("0")
    try:
        parsed = Decimal(str(value).replace(",", ""))
    except (InvalidOperation, ValueError):
        return Decimal("0")
    return parsed if parsed.is_finite() and parsed >= 0 else Decimal("0")


def _to_int(value: Any, default: int, minimum: int) -> int:
    if isinstance(value, bool) or value is None:
        return default
    try:
        parsed = int(Decimal(str(value)))
    except (InvalidOperation, ValueError):
        return default
    return parsed if parsed >= minimum else default


def _pick(entry: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in entry and entry[key] not in (None, ""):
            return entry[key]
    return None


def sanitize_extracted_items(raw_items: Any) -> tuple[list[LineItemIn], list[str]]:
    """Apply defaults to untrusted assistant output and validate each entry like a typed-in item."""
    if not isinstance(raw_items, list):
        raise CollaboratorFailure("invoice assistant did not return a list of items")

    items: list[LineItemIn] = []
    warnings: list[str] = []
    for idx, entry in enumerate(raw_items, start=1):
        if not isinstance(entry, dict):
            warnings.append(f"entry {idx} ignored: not an object")
            continue
        name = _pick(entry, "name", "itemName")
        supplier = _pick(entry, "supplier")
        description = _pick(entry, "description")
        candidate = {
            "name": str(name).strip() if name is not None else DEFAULT_NAME,
            "quantity": _to_int(_pick(entry, "quantity", "qty"), default=1, minimum=1),
            "description": str(description) if description is not None else "",
            "supplier": str(supplier).strip() if supplier is not None else "",
            "unit_price": _to_decimal(_pick(entry, "unitPrice", "unit_price")),
            "estimated_unit_cost": _to_decimal(_pick(entry, "estimatedUnitCost", "estimated_unit_cost")),
            "stock_level": _to_int(_pick(entry, "stockLevel", "stock_level"), default=0, minimum=0),
        }
        if not candidate["name"]:
            candidate["name"] = DEFAULT_NAME
        try:
            items.append(LineItemIn(**candidate))
        except ValidationError as exc:
            warnings.append(f"entry {idx} ignored: {exc.errors()[0].get('msg', 'invalid item')}")
    return items, warnings


def _build_user_content(filename: str, content_type: str, data: bytes) -> list[dict[str, Any]] | str:
    if content_type == PDF_TYPE:
        try:
            lines = extract_lines(data)
        except Exception as exc:
            logger.exception("Invoice PDF could not be parsed", extra={"invoice": filename})
            raise CollaboratorFailure("the PDF invoice could not be read, please enter the items manually") from exc
        if not lines:
            raise InvalidRequest("no readable text found in the PDF invoice")
        return f"Invoice file: {filename}\n\n" + "\n".join(lines)
    encoded = base64.b64encode(data).decode("ascii")
    return [
        {"type": "text", "text": f"Invoice file: {filename}"},
        {"type": "image_url", "image_url": {"url": f"data:{content_type};base64,{encoded}"}},
    ]


async def _ask_assistant(user_content: list[dict[str, Any]] | str) -> str:
    api_key = settings.openai_api_key
    if not api_key:
        raise CollaboratorFailure("invoice extraction assistant is not configured")

    payload = {
        "model": settings.extraction_model,
        "temperature": 0,
        "response_format": {"type": "json_object"},
        "messages": [
            {"role": "system", "content": EXTRACTION_PROMPT},
            {"role": "user", "content": user_content},
        ],
    }
    try:
        async with httpx.AsyncClient(timeout=settings.extraction_timeout_seconds) as client:
            res = await client.post(
                f"{settings.openai_base_url.rstrip('/')}/chat/completions",
                headers={"Authorization": f"Bearer {api_key}"},
                json=payload,
            )
            res.raise_for_status()
            data = res.json()
    except httpx.HTTPError as exc:
        logger.exception("Invoice assistant call failed")
        raise CollaboratorFailure("failed to analyze the invoice, please enter the items manually") from exc
    except ValueError as exc:
        logger.exception("Invoice assistant replied with a non-JSON body")
        raise CollaboratorFailure("invoice assistant returned an unreadable reply") from exc

    choices = data.get("choices") if isinstance(data, dict) else None
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        logger.warning("Invoice assistant reply has no choices")
        raise CollaboratorFailure("invoice assistant returned no answer")
    message = choices[0].get("message")
    content = message.get("content") if isinstance(message, dict) else None
    return content if isinstance(content, str) else ""


async def extract_invoice_items(*, filename: str, content_type: str, data: bytes) -> tuple[list[LineItemIn], list[str]]:
    content_type = (content_type or "").lower()
    if content_type != PDF_TYPE and content_type not in IMAGE_TYPES:
        raise InvalidRequest("invoice must be a PDF or an image")
    if not data:
        raise InvalidRequest("invoice file is empty")

    content = await _ask_assistant(_build_user_content(filename, content_type, data))
    try:
        parsed = json.loads(content) if content else {}
    except json.JSONDecodeError as exc:
        raise CollaboratorFailure("invoice assistant returned malformed JSON") from exc

    raw_items = parsed.get("items") if isinstance(parsed, dict) else parsed
    items, warnings = sanitize_extracted_items(raw_items)
    logger.info("Invoice extracted", extra={"invoice": filename, "items": len(items), "skipped": len(warnings)})
    return items, warnings
