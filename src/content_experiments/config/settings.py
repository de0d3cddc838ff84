"""Pydantic settings model for application configuration."""

from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ExperimentSettings(BaseSettings):
    """Defaults and limits applied to experiment definitions."""

    model_config = SettingsConfigDict(env_prefix="EXPERIMENT_", extra="ignore")

    default_significance_level: float = 0.05
    default_minimum_sample_size: int = 1000
    default_minimum_detectable_effect: float = 0.05
    default_duration_days: int = 14
    max_variants: int = Field(32, description="Upper bound on variants per experiment")


class SchedulerSettings(BaseSettings):
    """Settings for the lifecycle monitor."""

    model_config = SettingsConfigDict(env_prefix="SCHEDULER_", extra="ignore")

    enabled: bool = True
    monitor_interval: float = Field(300.0, description="Seconds between monitor ticks")
    early_stopping_enabled: bool = True
    early_stopping_confidence: float = Field(95.0, description="Minimum confidence (%) to auto-stop")
    registry_ttl: float = Field(5.0, description="Seconds before a cached experiment is reloaded")
    lock_stripes: int = 64
    monitor_page_size: int = Field(500, description="Running experiments loaded per query by the monitor")


class DatabaseSettings(BaseSettings):
    """Settings for database storage."""

    model_config = SettingsConfigDict(env_prefix="DATABASE_", extra="ignore")

    url: Optional[str] = None
    path: Optional[str] = None
    echo: bool = False


class LoggingSettings(BaseSettings):
    """Settings for logging configuration."""

    model_config = SettingsConfigDict(env_prefix="LOG_", extra="ignore")

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file_path: Optional[str] = None
    json_format: bool = False


class MetricsSettings(BaseSettings):
    """Settings for metrics collection."""

    model_config = SettingsConfigDict(env_prefix="METRICS_", extra="ignore")

    enabled: bool = True
    max_points_per_metric: int = 1000


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application info
    app_name: str = "Content-Experiments"
    version: str = "0.1.0"
    debug: bool = False

    # Component settings
    experiment: ExperimentSettings = Field(default_factory=ExperimentSettings)
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    metrics: MetricsSettings = Field(default_factory=MetricsSettings)

    @classmethod
    def from_file(cls, file_path: str) -> "Settings":
        """Load settings from a YAML or JSON file.

        Args:
            file_path: Path to the configuration file.

        Returns:
            Settings instance loaded from file.
        """
        import yaml
        import json

        path = Path(file_path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {file_path}")

        with open(path, "r", encoding="utf-8") as f:
            if path.suffix.lower() in [".yaml", ".yml"]:
                config_data = yaml.safe_load(f) or {}
            elif path.suffix.lower() == ".json":
                config_data = json.load(f)
            else:
                raise ValueError(f"Unsupported configuration file format: {path.suffix}")

        return cls(**config_data)

    def to_file(self, file_path: str) -> None:
        """Save settings to a YAML or JSON file.

        Args:
            file_path: Path where to save the configuration file.
        """
        import yaml
        import json

        path = Path(file_path)
        config_data = self.model_dump(mode="json")

        with open(path, "w", encoding="utf-8") as f:
            if path.suffix.lower() in [".yaml", ".yml"]:
                yaml.dump(config_data, f, default_flow_style=False, sort_keys=False)
            elif path.suffix.lower() == ".json":
                json.dump(config_data, f, indent=2, sort_keys=False)
            else:
                raise ValueError(f"Unsupported configuration file format: {path.suffix}")

    def get_data_directory(self) -> Path:
        """Get the application data directory."""
        if self.debug:
            return Path.cwd() / "data"
        else:
            return Path.home() / ".content_experiments"

    def get_database_path(self) -> Path:
        """Get the database file path."""
        if self.database.path:
            return Path(self.database.path)
        else:
            return self.get_data_directory() / "experiments.db"
