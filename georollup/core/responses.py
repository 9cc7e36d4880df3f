"""Standardized API response utilities."""

import json
from datetime import date, datetime
from typing import Any
from uuid import UUID

from fastapi import HTTPException, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel


class CustomJSONEncoder(json.JSONEncoder):
    """Custom JSON encoder that handles UUID, datetime, and pydantic models."""

    def default(self, obj):
        if isinstance(obj, UUID):
            return str(obj)
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        if isinstance(obj, BaseModel):
            return obj.model_dump(mode="json")
        return super().default(obj)


def success_response(data: Any = None, message: str | None = None) -> dict[str, Any]:
    """Create a successful API response."""
    return {"success": True, "data": data, "message": message}


def error_response(
    message: str,
    data: Any = None,
    errors: dict[str, Any] | None = None,
    status_code: int = status.HTTP_400_BAD_REQUEST,
) -> HTTPException:
    """Create an error response that raises an HTTPException."""
    raise HTTPException(
        status_code=status_code,
        detail={"success": False, "message": message, "data": data, "errors": errors},
    )


def error_response_dict(
    error_dict: dict[str, Any],
    status_code: int = status.HTTP_400_BAD_REQUEST,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    """Create an error response as a JSONResponse (for exception handlers)."""
    # Serialize with custom encoder to handle UUID, datetime, etc.
    content = json.loads(json.dumps(error_dict, cls=CustomJSONEncoder))
    return JSONResponse(status_code=status_code, content=content, headers=headers)
