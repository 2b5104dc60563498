"""
Uniform response envelope shared by every endpoint.

Success: {"success": true, "message", "data"?, "meta"?}
Error:   {"success": false, "message", "errors"?}
"""
from typing import Any, Dict, List, Optional

from fastapi.responses import JSONResponse


def success(message: str, data: Any = None, meta: Optional[Dict[str, Any]] = None, status_code: int = 200) -> JSONResponse:
    body: Dict[str, Any] = {"success": True, "message": message}
    if data is not None:
        body["data"] = data
    if meta is not None:
        body["meta"] = meta
    return JSONResponse(status_code=status_code, content=body)


def error(message: str, errors: Optional[List[Dict[str, str]]] = None, status_code: int = 400) -> JSONResponse:
    body: Dict[str, Any] = {"success": False, "message": message}
    if errors is not None:
        body["errors"] = errors
    return JSONResponse(status_code=status_code, content=body)
