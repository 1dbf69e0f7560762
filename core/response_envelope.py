from __future__ import annotations

import inspect
from contextvars import ContextVar
from dataclasses import dataclass, field
from functools import wraps
from typing import Any, Callable

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from fastapi.routing import APIRoute
from starlette.responses import Response

_ENVELOPE_ATTR = "__upload_envelope__"

# Set by the request-id middleware so endpoints without a Request argument still echo it.
current_request_id: ContextVar[str | None] = ContextVar("current_request_id", default=None)


@dataclass(frozen=True)
class EnvelopeConfig:
    message: str
    status_code: int
    success_example: Any | None = None
    response_codes: dict[int, str] = field(default_factory=dict)


def success_payload(data: Any, message: str = "Success", *, request_id: str | None = None) -> dict[str, Any]:
    payload: dict[str, Any] = {"success": True, "message": message, "data": data}
    if request_id:
        payload["requestId"] = request_id
    return payload


def error_payload(message: str, data: Any = None, *, request_id: str | None = None) -> dict[str, Any]:
    payload: dict[str, Any] = {"success": False, "message": message, "data": data}
    if request_id:
        payload["requestId"] = request_id
    return payload


def error_response(
    *,
    status_code: int,
    message: str,
    data: Any = None,
    headers: dict[str, str] | None = None,
    request_id: str | None = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        headers=headers,
        content=jsonable_encoder(error_payload(message=message, data=data, request_id=request_id)),
    )


def _parse_http_exception_detail(detail: Any) -> tuple[str, dict[str, Any]]:
    """Split an exception detail into the envelope message and its ``{code, details}`` data."""
    if isinstance(detail, dict) and isinstance(detail.get("message"), str) and detail["message"].strip():
        return detail["message"], {
            "code": detail.get("code", "HTTP_EXCEPTION"),
            "details": detail.get("details"),
        }
    if isinstance(detail, str) and detail.strip():
        return detail, {"code": "HTTP_EXCEPTION", "details": None}
    return "Request failed", {"code": "HTTP_EXCEPTION", "details": detail}


def _request_id(request: Request | None) -> str | None:
    if request is not None:
        request_id = getattr(request.state, "request_id", None)
        if request_id:
            return request_id
    return current_request_id.get()


def http_exception_response(exc: HTTPException, request: Request | None = None) -> JSONResponse:
    message, data = _parse_http_exception_detail(exc.detail)
    return error_response(
        status_code=exc.status_code,
        message=message,
        data=data,
        request_id=_request_id(request),
        headers=exc.headers,
    )


def document_response(
    *,
    message: str = "Success",
    status_code: int = status.HTTP_200_OK,
    success_example: Any | None = None,
    response_codes: dict[int, str] | None = None,
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Wrap an endpoint's return value in the success envelope and remember how to document it."""
    config = EnvelopeConfig(
        message=message,
        status_code=status_code,
        success_example=success_example,
        response_codes=dict(response_codes or {}),
    )

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Response:
            result = func(*args, **kwargs)
            if inspect.isawaitable(result):
                result = await result
            if isinstance(result, Response):
                return result

            request = next((value for value in (*kwargs.values(), *args) if isinstance(value, Request)), None)
            return JSONResponse(
                status_code=config.status_code,
                content=jsonable_encoder(
                    success_payload(data=result, message=config.message, request_id=_request_id(request))
                ),
            )

        setattr(wrapper, _ENVELOPE_ATTR, config)
        return wrapper

    return decorator


def apply_response_documentation(app: FastAPI) -> None:
    """Publish the envelope example and the declared error codes in the OpenAPI schema."""
    for route in app.routes:
        if not isinstance(route, APIRoute):
            continue
        config = getattr(route.endpoint, _ENVELOPE_ATTR, None)
        if not isinstance(config, EnvelopeConfig):
            continue

        route.status_code = config.status_code
        responses = dict(route.responses or {})
        responses[config.status_code] = {
            "description": config.message,
            "content": {
                "application/json": {
                    "example": success_payload(data=config.success_example, message=config.message),
                }
            },
        }
        for code, description in config.response_codes.items():
            responses.setdefault(code, {"description": description})
        route.responses = responses

    app.openapi_schema = None
