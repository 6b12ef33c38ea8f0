from typing import Any, Dict, Mapping, Optional

from fastapi import status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse


def envelope(data: Any, message: str, status_code: int) -> Dict[str, Any]:
    """Body shared by successful and failed responses."""
    return {
        "status_code": status_code,
        "status": "error" if status_code >= status.HTTP_400_BAD_REQUEST else "success",
        "message": message,
        "data": {} if data is None else jsonable_encoder(data),
    }


def api_response(
    *,
    data: Optional[Any] = None,
    message: str = "OK",
    status_code: int = status.HTTP_200_OK,
    headers: Optional[Mapping[str, str]] = None,
) -> JSONResponse:
    return JSONResponse(
        envelope(data, message, status_code),
        status_code=status_code,
        headers=dict(headers) if headers else None,
    )
