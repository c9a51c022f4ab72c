"""
Configuration Management
Loads settings from YAML files and environment variables
"""
import yaml
import os
from pathlib import Path
from typing import Any, Dict, Optional
from pydantic_settings import BaseSettings

from leadflow.domain.models.sla import SlaThresholds


class Settings(BaseSettings):
    """Application settings loaded from environment"""

    environment: str = "development"
    debug: bool = True
    log_level: str = "INFO"

    # API Settings
    api_prefix: str = "/api/v1"
    cors_origins: list[str] = ["http://localhost:3000"]

    # Record store
    supabase_url: Optional[str] = None
    supabase_service_key: Optional[str] = None

    # Workflow automation
    workflow_webhook_url: Optional[str] = None
    not_reached_email_webhook_path: str = "lead-not-reached-3x"
    appointment_invite_webhook_path: str = "appointment-invite"
    workflow_timeout_seconds: float = 10.0

    # SLA monitor
    sla_poll_interval_seconds: float = 30.0
    business_timezone: str = "Europe/Berlin"
    alert_state_path: Optional[str] = None

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


class ConfigManager:
    """Manages loading and merging configuration from multiple sources"""

    def __init__(self, env: str = "development", config_dir: Optional[Path] = None):
        self.env = env
        self.config_dir = config_dir or Path(__file__).parent.parent.parent / "config"
        self._config: Dict[str, Any] = {}
        self._load_config()

    def _load_config(self) -> None:
        """Load configuration files in order of precedence"""
        # Load default config if exists
        default_path = self.config_dir / "default.yaml"
        if default_path.exists():
            self._config = self._load_yaml(default_path)

        # Load environment-specific config
        env_path = self.config_dir / f"{self.env}.yaml"
        if env_path.exists():
            env_config = self._load_yaml(env_path)
            self._deep_merge(self._config, env_config)

        # Substitute environment variables
        self._substitute_env_vars(self._config)

    def _load_yaml(self, path: Path) -> Dict:
        """Load YAML file"""
        with open(path, 'r') as f:
            return yaml.safe_load(f) or {}

    def _substitute_env_vars(self, config: Dict) -> None:
        """Replace ${VAR_NAME} with environment variable values"""
        for key, value in config.items():
            if isinstance(value, dict):
                self._substitute_env_vars(value)
            elif isinstance(value, str) and value.startswith("${") and value.endswith("}"):
                env_var = value[2:-1]
                config[key] = os.getenv(env_var, value)

    def _deep_merge(self, base: Dict, override: Dict) -> None:
        """Recursively merge override into base"""
        for key, value in override.items():
            if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                self._deep_merge(base[key], value)
            else:
                base[key] = value

    def get(self, key_path: str, default: Any = None) -> Any:
        """
        Get configuration value using dot notation
        Example: config.get("sla.contact_hours") -> 24
        """
        keys = key_path.split('.')
        value = self._config

        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default

        return value

    def get_sla_thresholds(self) -> SlaThresholds:
        """SLA limits from the `sla` section; missing keys keep their defaults"""
        section = self.get("sla", {}) or {}
        return SlaThresholds(**{k: v for k, v in section.items() if k in SlaThresholds.model_fields})


# Global instances
_settings: Optional[Settings] = None
_config_manager: Optional[ConfigManager] = None


def get_settings() -> Settings:
    """Get or create the global settings instance"""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def get_config_manager() -> ConfigManager:
    """Get or create the global YAML config manager for the current environment"""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager(env=get_settings().environment)
    return _config_manager
