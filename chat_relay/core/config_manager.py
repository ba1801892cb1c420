import yaml
import os
from typing import Dict, Any, List, Optional
from .logging import logger

DEFAULT_MODEL = "openai/gpt-4o-mini"
DEFAULT_UPSTREAM_URL = "https://openrouter.ai/api/v1"


def get_env(name: str, default: Optional[str] = None) -> Optional[str]:
    """Look up ``VITE_<name>`` first, then ``<name>``, so front-end .env files work unchanged."""
    value = os.environ.get(f"VITE_{name}")
    if value:
        return value
    value = os.environ.get(name)
    if value:
        return value
    return default


def get_int_env(name: str, default: int) -> int:
    raw = get_env(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Ignoring non-integer value for {name}: {raw!r}")
        return default


class ConfigManager:
    """
    Process configuration, read once at start.

    Environment variables cover secrets, ports and upstream settings.
    ``config/services.yaml`` holds the process orchestrator's service
    definitions.
    """

    def __init__(self, config_dir: str = "config"):
        self.config_dir = config_dir
        self.services_path = os.path.join(config_dir, "services.yaml")
        self.config = self._load_config()

        self.debug = get_env("DEBUG", "false").lower() == "true"
        self.log_level = get_env("LOG_LEVEL", "INFO")

        # Upstream chat completion API
        self.api_key = get_env("OPENROUTER_API_KEY")
        self.default_model = get_env("OPENROUTER_MODEL", DEFAULT_MODEL)
        self.upstream_base_url = get_env("OPENROUTER_BASE_URL", DEFAULT_UPSTREAM_URL)
        self.app_url = get_env("APP_URL", "http://localhost:3000")
        self.app_title = get_env("APP_TITLE", "Chat Relay")

        # Ports and service discovery
        self.api_port = get_int_env("API_PORT", 3002)
        self.registry_port = get_int_env("SERVICE_REGISTRY_PORT", 3999)
        self.frontend_port = get_int_env("FRONTEND_PORT", 3000)
        self.registry_url = get_env("SERVICE_REGISTRY_URL")
        self.registry_file = get_env("REGISTRY_FILE", os.path.join("data", "service-registry.json"))
        self.database_url = get_env("DATABASE_URL")

        self.cors_origins = self._split_list(get_env("CORS_ORIGINS", "http://localhost:3000,http://localhost:3001"))
        self.rate_limit_max = get_int_env("RATE_LIMIT_MAX", 50)
        self.rate_limit_window_seconds = get_int_env("RATE_LIMIT_WINDOW_SECONDS", 15 * 60)

        logger.info("Configuration manager initialized", config={
            "config_dir": config_dir,
            "debug_enabled": self.debug,
            "log_level": self.log_level,
            "api_key_configured": self.api_key is not None,
            "default_model": self.default_model,
            "upstream_base_url": self.upstream_base_url,
            "api_port": self.api_port,
            "registry_port": self.registry_port,
            "registry_url": self.registry_url,
            "services_config_exists": os.path.exists(self.services_path),
        })

    @staticmethod
    def _split_list(value: str) -> List[str]:
        return [item.strip() for item in value.split(",") if item.strip()]

    def _load_config(self) -> Dict[str, Any]:
        config = {}
        try:
            with open(self.services_path, 'r') as f:
                config['services'] = (yaml.safe_load(f) or {}).get('services', {}) or {}
        except FileNotFoundError as e:
            logger.warning(f"Configuration file not found: {e}", config={
                "error_type": "file_not_found",
                "file_path": str(e.filename) if e.filename else 'unknown'
            })
        except yaml.YAMLError as e:
            logger.error(f"Error parsing YAML file: {e}", config={
                "error_type": "yaml_parse_error",
                "error_message": str(e)
            })
        return config

    def get_services(self) -> Dict[str, Any]:
        return self.config.get('services', {})

    @property
    def api_key_configured(self) -> bool:
        return bool(self.api_key)

    def upstream_provider_config(self) -> Dict[str, Any]:
        """Provider settings in the shape BaseProvider expects."""
        return {
            "base_url": self.upstream_base_url,
            "api_key": self.api_key,
            "headers": {
                "HTTP-Referer": self.app_url,
                "X-Title": self.app_title,
            },
        }
