"""
Main Error Handler

Creates standardized HTTPExceptions with proper logging for every service.
"""

import json
from typing import Optional, Dict, Any
from fastapi import HTTPException
import httpx

from .error_types import ErrorType, ErrorContext
from .error_logger import ErrorLogger


class ErrorHandler:
    """Centralized error handling utility."""

    @staticmethod
    def create_http_exception(
        error_type: ErrorType,
        context: Optional[ErrorContext] = None,
        original_exception: Optional[Exception] = None,
        log_error: bool = True,
        status_code: Optional[int] = None,
        headers: Optional[Dict[str, str]] = None,
        details: Any = None,
        **format_kwargs
    ) -> HTTPException:
        """
        Create a standardized HTTPException with proper logging.

        Args:
            error_type: The type of error to create
            context: Error context information
            original_exception: Original exception that caused this error
            log_error: Whether to log the error
            status_code: Overrides the error type status (dynamic provider errors)
            headers: Extra response headers (e.g. Retry-After)
            details: Extra payload attached to the error detail
            **format_kwargs: Additional kwargs for message formatting

        Returns:
            HTTPException with standardized format
        """
        if context is None:
            context = ErrorContext()

        format_dict = {**context.__dict__, **format_kwargs}
        error_detail = error_type.create_error_detail(**format_dict)

        resolved_status = status_code or error_type.status_code or 500
        if error_type is ErrorType.PROVIDER_HTTP_ERROR:
            error_detail["error"]["code"] = f"{error_type.code}_{resolved_status}"

        if details is not None:
            error_detail["details"] = details

        if log_error:
            ErrorLogger.log_error(
                error_type=error_type,
                context=context,
                original_exception=original_exception,
                additional_data={"error_detail": error_detail},
                **format_kwargs
            )

        return HTTPException(
            status_code=resolved_status,
            detail=error_detail,
            headers=headers
        )

    @staticmethod
    def handle_invalid_request_format(error_details: str, context: ErrorContext) -> HTTPException:
        """Handle a body that is not a JSON object."""
        return ErrorHandler.create_http_exception(
            error_type=ErrorType.INVALID_REQUEST_FORMAT,
            context=context,
            error_details=error_details
        )

    @staticmethod
    def handle_invalid_request(context: ErrorContext) -> HTTPException:
        """Handle a missing or empty messages array."""
        return ErrorHandler.create_http_exception(
            error_type=ErrorType.INVALID_REQUEST,
            context=context
        )

    @staticmethod
    def handle_invalid_message_format(context: ErrorContext, message_index: int) -> HTTPException:
        """Handle a message with a bad role or content."""
        return ErrorHandler.create_http_exception(
            error_type=ErrorType.INVALID_MESSAGE_FORMAT,
            context=context,
            details={"message_index": message_index}
        )

    @staticmethod
    def handle_missing_required_field(field_name: str, context: ErrorContext) -> HTTPException:
        return ErrorHandler.create_http_exception(
            error_type=ErrorType.MISSING_REQUIRED_FIELD,
            context=context,
            field_name=field_name
        )

    @staticmethod
    def handle_service_not_found(service_name: str, context: ErrorContext) -> HTTPException:
        context.service_name = service_name
        return ErrorHandler.create_http_exception(
            error_type=ErrorType.SERVICE_NOT_FOUND,
            context=context
        )

    @staticmethod
    def handle_rate_limited(retry_after: int, context: ErrorContext) -> HTTPException:
        """Handle a client that exhausted its request window."""
        return ErrorHandler.create_http_exception(
            error_type=ErrorType.RATE_LIMIT_EXCEEDED,
            context=context,
            headers={"Retry-After": str(retry_after)},
            retry_after=retry_after
        )

    @staticmethod
    def handle_provider_config_error(error_details: str, context: ErrorContext, original_exception: Optional[Exception] = None) -> HTTPException:
        """Handle provider configuration error."""
        return ErrorHandler.create_http_exception(
            error_type=ErrorType.PROVIDER_CONFIG_ERROR,
            context=context,
            original_exception=original_exception,
            error_details=error_details
        )

    @staticmethod
    def handle_provider_http_error(
        status_code: int,
        response_text: str,
        context: ErrorContext,
        provider_name: Optional[str] = None
    ) -> HTTPException:
        """
        Handle a non-2xx upstream response.

        The upstream status code is passed through and the upstream body is
        attached under ``details`` (parsed when it is JSON).
        """
        if provider_name:
            context.provider_name = provider_name

        ErrorLogger.log_provider_error(
            provider_name=provider_name or "unknown",
            error_details=response_text,
            status_code=status_code,
            context=context
        )

        try:
            details = json.loads(response_text)
        except (json.JSONDecodeError, ValueError):
            details = {"message": response_text}

        error_message = response_text
        if isinstance(details, dict):
            upstream_error = details.get("error")
            if isinstance(upstream_error, dict) and upstream_error.get("message"):
                error_message = upstream_error["message"]
            elif details.get("message"):
                error_message = details["message"]

        return ErrorHandler.create_http_exception(
            error_type=ErrorType.PROVIDER_HTTP_ERROR,
            context=context,
            log_error=False,
            status_code=status_code,
            details=details,
            error_details=error_message
        )

    @staticmethod
    def handle_provider_network_error(
        original_exception: httpx.RequestError,
        context: ErrorContext,
        provider_name: Optional[str] = None
    ) -> HTTPException:
        """Handle provider network errors."""
        if provider_name:
            context.provider_name = provider_name

        return ErrorHandler.create_http_exception(
            error_type=ErrorType.PROVIDER_NETWORK_ERROR,
            context=context,
            original_exception=original_exception,
            error_details=str(original_exception) or type(original_exception).__name__
        )

    @staticmethod
    def handle_internal_server_error(
        error_details: str,
        context: ErrorContext,
        original_exception: Optional[Exception] = None
    ) -> HTTPException:
        """Handle internal server errors."""
        return ErrorHandler.create_http_exception(
            error_type=ErrorType.INTERNAL_SERVER_ERROR,
            context=context,
            original_exception=original_exception,
            error_details=error_details
        )
