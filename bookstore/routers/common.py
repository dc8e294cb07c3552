# 📄 bookstore/routers/common.py
# Role: response wrappers and small helpers shared by every router

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


# ─────────────────────────────────────────────────────────
# Response wrappers
# ─────────────────────────────────────────────────────────
class ResponseBase(BaseModel):
    ok: bool = True
    trace_id: Optional[str] = None


class ActionData(BaseModel):
    result: Dict[str, Any] = Field(default_factory=dict)


class ActionResponse(ResponseBase):
    data: ActionData


class PingResponse(ResponseBase):
    page: str
    version: str
    stage: str


def ok(result: Dict[str, Any]) -> ActionResponse:
    return ActionResponse(ok=True, data=ActionData(result=result))


def ping(page_id: str, version: str) -> PingResponse:
    return PingResponse(ok=True, page=page_id, version=version, stage="connected")


def xlsx_response(filename: str, content: bytes) -> StreamingResponse:
    return StreamingResponse(
        content=iter([content]),
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
