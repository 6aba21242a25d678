"""
Response envelope and error handlers.

Every success looks like {"status_code", "data", "message", "success"} and
every failure like {"success": false, "message", "errors"}.
"""

import logging
from typing import Any, List, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from pymongo.errors import DuplicateKeyError
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from vidnest.helpers import serialize_doc

logger = logging.getLogger(__name__)


def api_response(data: Any = None, message: str = "Success", status_code: int = 200) -> JSONResponse:
    body = {
        "status_code": status_code,
        "data": serialize_doc(data),
        "message": message,
        "success": status_code < 400,
    }
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body))


def error_response(status_code: int, message: str, errors: Optional[List[Any]] = None, headers=None) -> JSONResponse:
    body = {"success": False, "message": message, "errors": errors or []}
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body), headers=headers)


def _validation_messages(errors) -> List[str]:
    messages = []
    for err in errors:
        location = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        messages.append(f"{location}: {err.get('msg')}" if location else err.get("msg"))
    return messages


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404 and exc.detail == "Not Found":
        return error_response(404, f"Route {request.url.path} not found")
    return error_response(exc.status_code, str(exc.detail), headers=getattr(exc, "headers", None))


async def request_validation_handler(request: Request, exc: RequestValidationError):
    return error_response(400, "Validation Error", _validation_messages(exc.errors()))


async def model_validation_handler(request: Request, exc: ValidationError):
    return error_response(400, "Validation Error", _validation_messages(exc.errors()))


async def duplicate_key_handler(request: Request, exc: DuplicateKeyError):
    key_pattern = (exc.details or {}).get("keyPattern") or {}
    field = next(iter(key_pattern), "value")
    return error_response(400, f"{field} already exists")


async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    return error_response(429, "Too many requests, please try again later.", [str(exc.detail)])


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return error_response(500, "Internal Server Error")


def register_error_handlers(app: FastAPI):
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(ValidationError, model_validation_handler)
    app.add_exception_handler(DuplicateKeyError, duplicate_key_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
