"""
Logging configuration and setup for the chat relay services.

Plain text formatting with Unicode escape decoding, a file handler under
LOG_DIR and a console handler whose level follows LOG_LEVEL.
"""

import logging
import os
import json
import re


class UnicodeFormatter(logging.Formatter):
    """
    Formatter that decodes Unicode escape sequences in log messages.

    Upstream error bodies frequently arrive as JSON with ``\\uXXXX`` escapes;
    decoding them keeps the log readable.
    """

    def __init__(self, fmt=None, datefmt=None):
        super().__init__(fmt, datefmt)
        self.unicode_pattern = re.compile(r'\\u([0-9a-fA-F]{4})')

    def _decode_unicode_escapes(self, text):
        """
        Decode Unicode escape sequences in the given text.

        Args:
            text (str): Text that may contain Unicode escape sequences

        Returns:
            str: Text with Unicode escape sequences decoded to actual characters
        """
        if not text:
            return text

        try:
            if '"error":' in text and '\\u' in text:
                decoded = json.loads(text)
                if isinstance(decoded, dict):
                    return json.dumps(decoded, ensure_ascii=False)
        except (json.JSONDecodeError, ValueError):
            pass

        def replace_unicode(match):
            hex_code = match.group(1)
            try:
                return chr(int(hex_code, 16))
            except ValueError:
                return match.group(0)

        return self.unicode_pattern.sub(replace_unicode, text)

    def format(self, record):
        formatted = super().format(record)
        return self._decode_unicode_escapes(formatted)


def setup_logging():
    """
    Single logging setup shared by every chat relay process.

    Returns:
        logging.Logger: Configured logger instance
    """
    log_level = os.environ.get("LOG_LEVEL", "INFO").upper()
    if not hasattr(logging, log_level):
        log_level = "INFO"

    logger = logging.getLogger("chat-relay")
    logger.setLevel(getattr(logging, log_level))
    logger.propagate = False

    logger.handlers.clear()

    log_dir = os.environ.get("LOG_DIR", "logs")
    os.makedirs(log_dir, exist_ok=True)

    formatter = UnicodeFormatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S%z"
    )

    file_handler = logging.FileHandler(os.path.join(log_dir, "app.log"))
    file_handler.setFormatter(formatter)
    file_handler.setLevel(logging.INFO)
    logger.addHandler(file_handler)

    if log_level == "DEBUG":
        debug_handler = logging.FileHandler(os.path.join(log_dir, "debug.log"))
        debug_handler.setFormatter(formatter)
        debug_handler.setLevel(logging.DEBUG)
        logger.addHandler(debug_handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    console_handler.setLevel(logging.DEBUG if log_level == "DEBUG" else logging.INFO)
    logger.addHandler(console_handler)

    return logger
