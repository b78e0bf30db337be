from __future__ import annotations

from pydantic import BaseModel, Field

from medreq.schemas.requisition import LineItemIn


class ExtractedItemsOut(BaseModel):
    items: list[LineItemIn] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
