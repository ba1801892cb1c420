from typing import Dict, Any
import httpx

from .base import BaseProvider, UpstreamStream
from .openrouter import OpenRouterProvider


def get_provider_instance(provider_config: Dict[str, Any], client: httpx.AsyncClient) -> BaseProvider:
    """Build the upstream client. Raises a 500 config error when the API key is missing."""
    return OpenRouterProvider(provider_config, client)


__all__ = ['BaseProvider', 'OpenRouterProvider', 'UpstreamStream', 'get_provider_instance']
