"""
Client for the service registry.

Registration calls are best-effort: a service keeps running when the
registry is down, so failures are logged and reported in the result
instead of raised.
"""

import os
from typing import Any, Dict, Optional

import httpx

from ...core.exceptions import ServiceNotFoundError
from ...core.logging import logger

DEFAULT_REGISTRY_URL = "http://localhost:3999"

# Last-resort discovery when neither the registry nor the environment knows a service
FALLBACK_PORTS = {
    "frontend": 3000,
    "integration-api": 3001,
    "api": 3002,
    "chat-relay-proxy": 3002,
    "openrouter-proxy": 3003,
}


def env_var_for(service_name: str) -> str:
    """``chat-relay-proxy`` -> ``CHAT_RELAY_PROXY_URL``."""
    return f"{service_name.replace('-', '_').upper()}_URL"


class RegistryClient:
    def __init__(self, base_url: Optional[str], client: httpx.AsyncClient, timeout: float = 5.0):
        self.base_url = (base_url or DEFAULT_REGISTRY_URL).rstrip("/")
        self.client = client
        self.timeout = timeout

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            return response.reason_phrase or f"HTTP {response.status_code}"
        if isinstance(data, dict) and isinstance(data.get("detail"), dict):
            data = data["detail"]
        error = data.get("error") if isinstance(data, dict) else None
        if isinstance(error, dict):
            return error.get("message", str(error))
        return str(error or data)

    async def register_service(self, service_name: str, url: str,
                               metadata: Optional[Dict[str, Any]] = None,
                               health: Optional[str] = None) -> Dict[str, Any]:
        payload = {"serviceName": service_name, "url": url, "metadata": metadata or {}}
        if health:
            payload["health"] = health
        try:
            response = await self.client.post(f"{self.base_url}/register", json=payload, timeout=self.timeout)
            if response.is_error:
                message = f"Registration failed: {self._error_message(response)}"
                logger.warning(message, service_name=service_name)
                return {"success": False, "error": message}
            logger.info(f"Service '{service_name}' registered with registry", service_name=service_name,
                        registry_url=self.base_url)
            return response.json()
        except httpx.HTTPError as e:
            logger.warning(f"Failed to register service '{service_name}': {e}", service_name=service_name)
            return {"success": False, "error": str(e) or type(e).__name__}

    async def unregister_service(self, service_name: str) -> Dict[str, Any]:
        try:
            response = await self.client.post(f"{self.base_url}/unregister",
                                              json={"serviceName": service_name}, timeout=self.timeout)
            if response.is_error:
                message = f"Unregistration failed: {self._error_message(response)}"
                logger.warning(message, service_name=service_name)
                return {"success": False, "error": message}
            logger.info(f"Service '{service_name}' unregistered from registry", service_name=service_name)
            return response.json()
        except httpx.HTTPError as e:
            logger.warning(f"Failed to unregister service '{service_name}': {e}", service_name=service_name)
            return {"success": False, "error": str(e) or type(e).__name__}

    async def get_service_url(self, service_name: str) -> str:
        """
        Resolve a service URL: registry first, then ``<NAME>_URL`` from the
        environment, then the well-known local port.

        Raises:
            ServiceNotFoundError: when no source knows the service
        """
        try:
            response = await self.client.get(f"{self.base_url}/service/{service_name}", timeout=self.timeout)
            if response.is_success:
                url = response.json()["url"]
                logger.debug(f"Found service '{service_name}' at {url}")
                return url
        except (httpx.HTTPError, ValueError, KeyError) as e:
            logger.warning(f"Registry lookup for '{service_name}' failed: {e}", service_name=service_name)

        env_name = env_var_for(service_name)
        fallback_url = os.environ.get(env_name)
        if fallback_url:
            logger.info(f"Service '{service_name}' not found in registry, using env var {env_name}: {fallback_url}")
            return fallback_url

        port = FALLBACK_PORTS.get(service_name)
        if port:
            fallback_url = f"http://localhost:{port}"
            logger.info(f"Service '{service_name}' not found in registry, using fallback port: {fallback_url}")
            return fallback_url

        raise ServiceNotFoundError(service_name)

    async def list_services(self) -> Dict[str, Any]:
        try:
            response = await self.client.get(f"{self.base_url}/services", timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Failed to list services: {e}")
            return {}
