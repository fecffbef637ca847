"""
DRF exception handler producing a single error shape for every API failure.

Every error response body looks like:

    {"error": "<human readable>", "error_code": "<STABLE_REASON>"}

with an optional "details" object for field-level validation errors.
Application errors (core.exceptions.BaseApplicationError) use their own
http_status; DRF's exceptions keep the status and headers DRF chose
(so 401 responses still carry WWW-Authenticate). Anything else is logged
and answered with a generic 500 so that no stack trace or internal
identifier leaves the process.

Configured in settings:
    REST_FRAMEWORK["EXCEPTION_HANDLER"] = "core.exception_handler.api_exception_handler"
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from rest_framework import exceptions, status
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

from core.exceptions import BaseApplicationError

if TYPE_CHECKING:
    from typing import Any

logger = logging.getLogger(__name__)


def api_exception_handler(exc: Exception, context: dict[str, Any]) -> Response:
    view = context.get("view")
    view_name = view.__class__.__name__ if view is not None else None

    if isinstance(exc, BaseApplicationError):
        log = logger.error if exc.http_status >= 500 else logger.info
        log(
            f"{view_name} failed: {exc}",
            extra={"error_code": exc.error_code, "view": view_name},
        )
        return Response(exc.to_dict(), status=exc.http_status)

    response = drf_exception_handler(exc, context)
    if response is None:
        logger.exception(
            f"Unhandled exception in {view_name}",
            extra={"view": view_name},
        )
        return Response(
            {"error": "Internal server error", "error_code": "INTERNAL_ERROR"},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    if isinstance(exc, exceptions.ValidationError):
        response.data = {
            "error": "Invalid request",
            "error_code": "VALIDATION_ERROR",
            "details": response.data,
        }
    else:
        detail = getattr(exc, "detail", None)
        response.data = {
            "error": str(detail) if detail is not None else str(exc),
            "error_code": getattr(exc, "default_code", "error").upper(),
        }
    return response
