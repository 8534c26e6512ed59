from __future__ import annotations

from typing import Any

from fastapi.responses import JSONResponse

"""Response envelopes: ``{success: true, data}`` / ``{success: false, message, data?}``."""


def success_response(data: Any) -> dict[str, Any]:
    return {"success": True, "data": data}


def error_response(message: str, status_code: int, data: Any = None) -> JSONResponse:
    payload: dict[str, Any] = {"success": False, "message": message}
    if data is not None:
        payload["data"] = data
    return JSONResponse(content=payload, status_code=status_code)
