"""
Configuration Validation Module
Validates record store and workflow settings on startup
"""
import os
import logging
from typing import List, Optional, Tuple
from dataclasses import dataclass

import pytz

logger = logging.getLogger(__name__)


@dataclass
class ValidationResult:
    """Result of a configuration validation check."""
    component: str
    setting: str
    is_valid: bool
    message: str


class ConfigValidator:
    """
    Validates engine configuration at startup.

    The record store credentials are required; the workflow endpoint is
    optional (outbound emails are skipped without it).
    """

    # Required environment variables by component
    REQUIRED_ENV_VARS = {
        "database": [
            ("SUPABASE_URL", "Supabase record store"),
            ("SUPABASE_SERVICE_KEY", "Supabase record store"),
        ],
    }

    # Optional but recommended
    OPTIONAL_ENV_VARS = {
        "workflow": [("WORKFLOW_WEBHOOK_URL", "Workflow automation endpoint")],
        "alerts": [("ALERT_STATE_PATH", "Per-device SLA alert state file")],
    }

    def __init__(self, strict: bool = False):
        """
        Initialize validator.

        Args:
            strict: If True, treat warnings as errors
        """
        self.strict = strict
        self.results: List[ValidationResult] = []

    def validate_all(self) -> Tuple[bool, List[ValidationResult]]:
        """
        Validate all configuration.

        Returns:
            Tuple of (all_valid, list of results)
        """
        self.results = []

        for component, vars_list in self.REQUIRED_ENV_VARS.items():
            for env_var, description in vars_list:
                if not os.getenv(env_var):
                    self._add_error(component, env_var, f"{description} requires {env_var} to be set")
                else:
                    self._add_success(component, env_var, f"{description} configured")

        for component, vars_list in self.OPTIONAL_ENV_VARS.items():
            for env_var, description in vars_list:
                if not os.getenv(env_var):
                    self._add_warning(component, env_var, f"{description} not configured (optional)")
                else:
                    self._add_success(component, env_var, f"{description} configured")

        timezone = os.getenv("BUSINESS_TIMEZONE")
        if timezone and timezone not in pytz.all_timezones_set:
            self._add_error("calendar", "BUSINESS_TIMEZONE", f"Unknown timezone '{timezone}'")

        errors = [r for r in self.results if not r.is_valid]
        return len(errors) == 0, self.results

    def _add_success(self, component: str, setting: str, message: str):
        self.results.append(ValidationResult(component, setting, True, message))

    def _add_error(self, component: str, setting: str, message: str):
        self.results.append(ValidationResult(component, setting, False, message))

    def _add_warning(self, component: str, setting: str, message: str):
        """Add warning validation result."""
        self.results.append(ValidationResult(
            component=component,
            setting=setting,
            is_valid=not self.strict,  # Warnings become errors in strict mode
            message=f"WARNING: {message}"
        ))

    def log_results(self):
        """Log all validation results."""
        errors = [r for r in self.results if not r.is_valid]
        warnings = [r for r in self.results if r.is_valid and "WARNING" in r.message]
        successes = [r for r in self.results if r.is_valid and "WARNING" not in r.message]

        if successes:
            logger.info("Configuration validated:")
            for r in successes:
                logger.info(f"  ✓ [{r.component}] {r.message}")

        for r in warnings:
            logger.warning(f"  ⚠ [{r.component}] {r.message}")

        if errors:
            logger.error("Configuration errors:")
            for r in errors:
                logger.error(f"  ✗ [{r.component}] {r.message}")

    def get_error_summary(self) -> Optional[str]:
        """Get summary of errors for exception message."""
        errors = [r for r in self.results if not r.is_valid]
        if not errors:
            return None

        lines = ["Configuration errors:"]
        for r in errors:
            lines.append(f"  - {r.setting}: {r.message}")
        return "\n".join(lines)


def validate_config_on_startup(strict: bool = False) -> bool:
    """
    Validate configuration at startup.

    Call this from the FastAPI lifespan hook. In production the caller
    passes strict=True and a failure raises; elsewhere problems are only
    logged.

    Args:
        strict: If True, fail on warnings and errors

    Returns:
        True if everything required is configured

    Raises:
        RuntimeError: In strict mode, if configuration is invalid
    """
    validator = ConfigValidator(strict=strict)
    all_valid, _ = validator.validate_all()
    validator.log_results()

    if not all_valid:
        if strict:
            raise RuntimeError(validator.get_error_summary())
        logger.warning("Configuration incomplete; falling back to the in-memory record store")
        return False

    logger.info("All configuration validated successfully")
    return True
