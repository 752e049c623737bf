"""JSend response envelopes for the guest API.

Unlike strict JSend, every status may carry a top-level ``message`` and
``code``. ``fail`` answers HTTP 400 unless told otherwise and always has
``data``; ``error`` answers HTTP 500 and always has a ``message``.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from fastapi import status as http_status
from fastapi.responses import JSONResponse

from core.guest.constants import JSendStatus

SUCCESS: JSendStatus = "success"
FAIL: JSendStatus = "fail"
ERROR: JSendStatus = "error"

DEFAULT_FAIL_MESSAGE = "Check your input for invalid data."
DEFAULT_ERROR_MESSAGE = "An internal error has occurred."


def jsend_payload(
    status: str,
    data: Optional[Mapping[str, Any]] = None,
    message: Optional[str] = None,
    code: Optional[str] = None,
) -> Dict[str, Any]:
    if status == SUCCESS:
        body: Dict[str, Any] = {"status": SUCCESS, "data": dict(data) if data is not None else None}
        if message:
            body["message"] = message
    elif status == FAIL:
        if not data:
            message = message or DEFAULT_FAIL_MESSAGE
            data = {"fail": message}
        body = {"status": FAIL, "data": dict(data)}
        if message:
            body["message"] = message
    elif status == ERROR:
        body = {"status": ERROR, "message": message or DEFAULT_ERROR_MESSAGE}
        if data:
            body["data"] = dict(data)
    else:
        raise ValueError(f'The status "{status}" is not supported by jSend.')
    if code is not None:
        body["code"] = code
    return body


def jsend(
    status: str,
    data: Optional[Mapping[str, Any]] = None,
    message: Optional[str] = None,
    *,
    status_code: Optional[int] = None,
    code: Optional[str] = None,
    headers: Optional[Mapping[str, str]] = None,
) -> JSONResponse:
    body = jsend_payload(status, data, message, code)
    if status_code is None:
        if status == FAIL:
            status_code = http_status.HTTP_400_BAD_REQUEST
        elif status == ERROR:
            status_code = http_status.HTTP_500_INTERNAL_SERVER_ERROR
        else:
            status_code = http_status.HTTP_200_OK
    return JSONResponse(status_code=status_code, content=body, headers=dict(headers or {}))


def success(data: Optional[Mapping[str, Any]] = None, message: Optional[str] = None, **kwargs: Any) -> JSONResponse:
    return jsend(SUCCESS, data, message, **kwargs)


def fail(data: Optional[Mapping[str, Any]] = None, message: Optional[str] = None, **kwargs: Any) -> JSONResponse:
    return jsend(FAIL, data, message, **kwargs)


def error(message: Optional[str] = None, data: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> JSONResponse:
    return jsend(ERROR, data, message, **kwargs)


__all__ = [
    "DEFAULT_ERROR_MESSAGE",
    "DEFAULT_FAIL_MESSAGE",
    "ERROR",
    "FAIL",
    "SUCCESS",
    "error",
    "fail",
    "jsend",
    "jsend_payload",
    "success",
]
