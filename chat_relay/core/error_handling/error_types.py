"""
Error Types and Context Definitions

Standardized error types and context information for consistent error
handling across the chat proxy, the service registry and the orchestrator.
"""

from enum import Enum
from typing import Dict, Any, Optional
from fastapi import status


class ErrorType(Enum):
    """Enumeration of standard error types in the system."""

    # Validation Errors (400)
    INVALID_REQUEST_FORMAT = ("invalid_request_format", status.HTTP_400_BAD_REQUEST, "Invalid request format. {error_details}")
    INVALID_REQUEST = ("invalid_request", status.HTTP_400_BAD_REQUEST, "Invalid request format. Messages array is required.")
    INVALID_MESSAGE_FORMAT = ("invalid_message_format", status.HTTP_400_BAD_REQUEST, "Invalid message format. Each message must have a valid role and content.")
    MISSING_REQUIRED_FIELD = ("missing_required_field", status.HTTP_400_BAD_REQUEST, "Missing required field: {field_name}")

    # Not Found Errors (404)
    SERVICE_NOT_FOUND = ("service_not_found", status.HTTP_404_NOT_FOUND, "Service '{service_name}' not found")

    # Rate limiting (429)
    RATE_LIMIT_EXCEEDED = ("rate_limit_exceeded", status.HTTP_429_TOO_MANY_REQUESTS, "Too many requests, please try again in {retry_after} seconds")

    # Server Errors (500)
    PROVIDER_CONFIG_ERROR = ("provider_config_error", status.HTTP_500_INTERNAL_SERVER_ERROR, "Provider configuration error: {error_details}")
    INTERNAL_SERVER_ERROR = ("internal_server_error", status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error: {error_details}")

    # Provider Errors (dynamic status codes)
    PROVIDER_HTTP_ERROR = ("provider_http_error", None, "Provider error: {error_details}")
    PROVIDER_NETWORK_ERROR = ("provider_network_error", status.HTTP_500_INTERNAL_SERVER_ERROR, "Network error communicating with provider: {error_details}")

    def __init__(self, code: str, status_code: Optional[int], message_template: str):
        self.code = code
        self.status_code = status_code
        self.message_template = message_template

    def format_message(self, **kwargs) -> str:
        """Format the error message with provided parameters."""
        try:
            return self.message_template.format(**kwargs)
        except KeyError:
            return self.message_template

    def create_error_detail(self, **kwargs) -> Dict[str, Any]:
        """Create standardized error detail dictionary."""
        return {
            "error": {
                "message": self.format_message(**kwargs),
                "code": self.code
            }
        }


class ErrorContext:
    """Context information for error handling."""

    def __init__(
        self,
        request_id: Optional[str] = None,
        client_host: Optional[str] = None,
        model_id: Optional[str] = None,
        endpoint_path: Optional[str] = None,
        provider_name: Optional[str] = None,
        service_name: Optional[str] = None,
        **additional_context
    ):
        self.request_id = request_id
        self.client_host = client_host
        self.model_id = model_id
        self.endpoint_path = endpoint_path
        self.provider_name = provider_name
        self.service_name = service_name
        self.additional_context = additional_context

    def to_log_extra(self) -> Dict[str, Any]:
        """Convert context to logging extra dictionary."""
        extra = {
            "log_type": "error"
        }

        if self.request_id:
            extra["request_id"] = self.request_id
        if self.client_host:
            extra["client_host"] = self.client_host
        if self.model_id:
            extra["model_id"] = self.model_id
        if self.endpoint_path:
            extra["endpoint_path"] = self.endpoint_path
        if self.provider_name:
            extra["provider_name"] = self.provider_name
        if self.service_name:
            extra["service_name"] = self.service_name

        extra.update(self.additional_context)
        return extra
