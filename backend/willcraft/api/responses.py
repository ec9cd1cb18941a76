"""
Response envelope helpers.

Successful responses are ``{"success": true, "data": ...}`` plus any
extra top-level fields; errors go through ``WillcraftError.to_dict``.
"""

from typing import Any

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse


def success_response(data: Any = None, status: int = 200, **fields: Any) -> JSONResponse:
    content = {"success": True}
    if data is not None:
        content["data"] = data
    content.update(fields)
    return JSONResponse(status_code=status, content=jsonable_encoder(content))
