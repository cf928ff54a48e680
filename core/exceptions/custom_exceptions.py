"""
Custom exceptions for the Waitline platform.

This module defines a hierarchy of custom exceptions used across the platform
to provide consistent error handling and reporting.
"""

from django.utils.translation import gettext_lazy as _
from rest_framework import status


class APIException(Exception):
    """Base exception for all API-related exceptions."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = _("An unexpected error occurred.")
    error_code = "error"

    def __init__(self, message=None, status_code=None, errors=None):
        self.message = message or self.default_message
        if status_code:
            self.status_code = status_code
        self.errors = errors
        super().__init__(self.message)


class ResourceNotFoundException(APIException):
    """Exception raised when a requested resource is not found."""

    status_code = status.HTTP_404_NOT_FOUND
    default_message = _("The requested resource was not found.")
    error_code = "not_found"


class PermissionDeniedException(APIException):
    """Exception raised when user doesn't have permission for an action."""

    status_code = status.HTTP_403_FORBIDDEN
    default_message = _("You do not have permission to perform this action.")
    error_code = "permission_denied"


class ConflictException(APIException):
    """Exception raised when the request conflicts with the current state of a resource."""

    status_code = status.HTTP_409_CONFLICT
    default_message = _("The request conflicts with the current state of the resource.")
    error_code = "conflict"


class InvalidOperationException(APIException):
    """Exception raised when an operation is invalid in the current state."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_message = _("This operation is not valid in the current state.")
    error_code = "invalid_operation"


class ServiceUnavailableException(APIException):
    """Exception raised when a backing service is unavailable."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = _("The service is currently unavailable.")
    error_code = "service_unavailable"
