from typing import Any, Optional

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from catalog import Pagination


def success(message: Optional[str] = None, data: Any = None) -> dict:
    body = {"success": True}
    if message:
        body["message"] = message
    if data is not None:
        body["data"] = jsonable_encoder(data)
    return body


def error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


def paginated(data: Any, total: int, pagination: Pagination) -> dict:
    return {
        "success": True,
        "data": jsonable_encoder(data),
        "pagination": {
            "page": pagination.page,
            "page_size": pagination.page_size,
            "total": total,
            "total_pages": pagination.total_pages(total),
        },
    }
