"""
Validation of inbound chat requests.
"""
from typing import Dict, Any, Optional

from ...core.error_handling import ErrorHandler, ErrorContext
from .chat_request import ALLOWED_ROLES


class ChatRequestValidator:
    """Checks the payload shape before anything is forwarded upstream."""

    def validate(self, body: Any, context: Optional[ErrorContext] = None) -> Dict[str, Any]:
        """
        Validate a parsed request body.

        Args:
            body: Parsed JSON body
            context: Error context for logging

        Returns:
            The body, unchanged

        Raises:
            HTTPException: 400 when the body, the messages array or a message is malformed
        """
        context = context or ErrorContext()

        if not isinstance(body, dict):
            raise ErrorHandler.handle_invalid_request_format(
                "Request body must be a JSON object.", context
            )

        messages = body.get("messages")
        if not messages or not isinstance(messages, list):
            raise ErrorHandler.handle_invalid_request(context)

        for index, message in enumerate(messages):
            if not self.is_valid_message(message):
                raise ErrorHandler.handle_invalid_message_format(context, index)

        return body

    @staticmethod
    def is_valid_message(message: Any) -> bool:
        return (
            isinstance(message, dict)
            and message.get("role") in ALLOWED_ROLES
            and isinstance(message.get("content"), str)
            and bool(message["content"])
        )
