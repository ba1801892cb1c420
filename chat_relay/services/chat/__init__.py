"""
Chat relay components.
"""

from .buffer_manager import SSELineBuffer
from .chat_request import ChatMessage, ChatRequest
from .error_handler import StreamingErrorHandler
from .format_detector import StreamFormatDetector
from .format_processor import StreamFormatProcessor
from .parsed_event import ParsedStreamEvent, PayloadShape
from .streaming_handler import StreamingRelay, RelayState
from .validator import ChatRequestValidator

__all__ = [
    'SSELineBuffer',
    'ChatMessage',
    'ChatRequest',
    'StreamingErrorHandler',
    'StreamFormatDetector',
    'StreamFormatProcessor',
    'ParsedStreamEvent',
    'PayloadShape',
    'StreamingRelay',
    'RelayState',
    'ChatRequestValidator'
]
