from .logging import logger


class UpstreamStreamError(Exception):
    """Error raised while relaying an upstream event stream."""
    def __init__(self, message: str, error_code: str = "provider_stream_error", original_exception: Exception = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.original_exception = original_exception

        logger.error(f"Upstream stream error: {message}", exc_info=original_exception is not None, exception={
            "type": "UpstreamStreamError",
            "error_code": error_code,
            "original_exception_type": type(original_exception).__name__ if original_exception else None
        })


class ServiceNotFoundError(Exception):
    """A service could not be resolved by the registry or its fallbacks."""
    def __init__(self, service_name: str, message: str = None):
        self.service_name = service_name
        self.message = message or f"Service '{service_name}' not found and no fallback available"
        super().__init__(self.message)


class UnknownServiceError(KeyError):
    """The orchestrator has no definition for the requested service key."""
    def __init__(self, service_key: str):
        super().__init__(service_key)
        self.service_key = service_key
        self.message = f"Unknown service: {service_key}"

    def __str__(self):
        return self.message
