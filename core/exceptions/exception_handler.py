"""
Global exception handler for the Waitline platform.

This module provides a custom exception handler for DRF that handles
custom exceptions and provides consistent error responses.
"""

import logging
from typing import Any, Dict, Optional

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db.utils import DatabaseError, IntegrityError
from django.utils.translation import gettext_lazy as _
from rest_framework import status
from rest_framework.exceptions import ValidationError
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

from .custom_exceptions import APIException

logger = logging.getLogger(__name__)


def get_error_code(exception: Exception) -> str:
    """
    Get standardized error code from exception.

    Args:
        exception: The exception to get code for

    Returns:
        str: Standardized error code
    """
    if isinstance(exception, APIException):
        return exception.error_code
    if isinstance(exception, ValidationError):
        return "validation_error"
    if isinstance(exception, IntegrityError):
        return "integrity_error"
    if isinstance(exception, DatabaseError):
        return "database_error"

    default_code = getattr(exception, "default_code", None)
    if default_code:
        return default_code

    # Convert exception class name to snake case
    return exception.__class__.__name__.lower().replace("error", "").replace("exception", "")


def get_error_details(exception: Exception) -> Optional[Any]:
    """Return structured details for validation errors, otherwise None."""
    if isinstance(exception, APIException):
        return exception.errors
    if isinstance(exception, ValidationError) and not isinstance(exception.detail, str):
        return exception.detail
    return None


def error_response(code: str, message: str, status_code: int, details=None) -> Response:
    body = {"error": {"code": code, "message": str(message)}}
    if details:
        body["error"]["details"] = details
    return Response(body, status=status_code)


def custom_exception_handler(exc: Exception, context: Dict[str, Any]) -> Optional[Response]:
    """
    Custom exception handler for DRF views.

    Handles both DRF and custom exceptions, providing consistent response format.

    Args:
        exc: The exception
        context: The exception context

    Returns:
        Response: Consistent error response
    """
    # Handle Django ValidationError by converting to DRF ValidationError
    if isinstance(exc, DjangoValidationError):
        if hasattr(exc, "message_dict"):
            exc = ValidationError(detail=exc.message_dict)
        else:
            exc = ValidationError(detail=exc.messages)

    error_code = get_error_code(exc)

    if isinstance(exc, APIException):
        # Expected business outcomes; no traceback needed
        logger.info(f"{error_code}: {exc.message}")
        return error_response(
            error_code, exc.message, exc.status_code, get_error_details(exc)
        )

    response = drf_exception_handler(exc, context)

    if response is not None:
        detail = getattr(exc, "detail", None)
        message = detail if isinstance(detail, str) else _("Invalid request.")
        logger.warning(f"{error_code}: {message}")
        return error_response(
            error_code, message, response.status_code, get_error_details(exc)
        )

    if isinstance(exc, DatabaseError):
        logger.error(f"Database error in {context.get('view')}: {exc}")
        return error_response(
            error_code,
            _("A database error occurred. Please try again later."),
            status.HTTP_503_SERVICE_UNAVAILABLE,
        )

    # Let Django's 500 handling deal with everything else
    return None
