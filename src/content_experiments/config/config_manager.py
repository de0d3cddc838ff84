"""Configuration manager implementation."""

from pathlib import Path
from typing import Any, Dict, List, Optional

from .settings import Settings


class ConfigManager:
    """Configuration manager with file and environment variable support."""

    def __init__(self, settings: Optional[Settings] = None):
        """Initialize the configuration manager.

        Args:
            settings: Settings instance. If None, loads default settings.
        """
        self.settings = settings or Settings()

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value.

        Args:
            key: Configuration key (dot-separated for nested access).
            default: Default value if key is not found.

        Returns:
            Configuration value or default.
        """
        value: Any = self.settings.model_dump()

        try:
            for k in key.split("."):
                if isinstance(value, dict):
                    value = value[k]
                else:
                    return default
            return value
        except (KeyError, TypeError):
            return default

    def set(self, key: str, value: Any) -> None:
        """Set a configuration value.

        Args:
            key: Configuration key (dot-separated for nested access).
            value: Value to set.
        """
        keys = key.split(".")
        config_dict = self.settings.model_dump()

        target = config_dict
        for k in keys[:-1]:
            if k not in target:
                target[k] = {}
            target = target[k]

        target[keys[-1]] = value

        self.settings = Settings(**config_dict)

    def load_from_file(self, file_path: str) -> None:
        """Load configuration from a YAML or JSON file."""
        self.settings = Settings.from_file(file_path)

    def get_all(self) -> Dict[str, Any]:
        """Get all configuration values as a nested dictionary."""
        return self.settings.model_dump()

    def create_default_config(self, file_path: str) -> None:
        """Create a default configuration file."""
        Settings().to_file(file_path)

    def get_database_path(self) -> Path:
        """Get the database file path."""
        return self.settings.get_database_path()

    def experiment_defaults(self) -> Dict[str, Any]:
        """Definition fields filled in when an experiment omits them."""
        experiment = self.settings.experiment
        return {
            "significance_level": experiment.default_significance_level,
            "minimum_sample_size": experiment.default_minimum_sample_size,
            "minimum_detectable_effect": experiment.default_minimum_detectable_effect,
            "duration_days": experiment.default_duration_days,
        }

    def validate_config(self) -> List[str]:
        """Validate the current configuration.

        Returns:
            List of validation error messages. Empty list if valid.
        """
        errors = []
        experiment = self.settings.experiment
        scheduler = self.settings.scheduler

        if not 0 < experiment.default_significance_level < 1:
            errors.append("experiment.default_significance_level must be between 0 and 1")

        if experiment.default_minimum_sample_size < 100:
            errors.append("experiment.default_minimum_sample_size must be at least 100")

        if not 1 <= experiment.default_duration_days <= 90:
            errors.append("experiment.default_duration_days must be between 1 and 90")

        if experiment.max_variants < 2:
            errors.append("experiment.max_variants must allow at least 2 variants")

        if scheduler.monitor_interval <= 0:
            errors.append("scheduler.monitor_interval must be positive")

        if not 0 < scheduler.early_stopping_confidence <= 100:
            errors.append("scheduler.early_stopping_confidence must be in (0, 100]")

        if scheduler.lock_stripes < 1:
            errors.append("scheduler.lock_stripes must be at least 1")

        if scheduler.monitor_page_size < 1:
            errors.append("scheduler.monitor_page_size must be at least 1")

        if self.settings.database.path:
            db_path = Path(self.settings.database.path)
            try:
                db_path.parent.mkdir(parents=True, exist_ok=True)
                test_file = db_path.parent / ".write_test"
                test_file.write_text("test")
                test_file.unlink()
            except OSError as e:
                errors.append(f"Database path is not writable: {e}")

        return errors
