"""Application configuration for districtq.

Reads runtime settings from environment variables with sensible defaults.
All configuration is centralised here; no other module reads os.environ directly.
"""

from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings


class AppConfig(BaseSettings):
    """Application-wide configuration loaded from environment variables.

    Attributes:
        work_dir: Directory holding ``districts/`` and the queue index file.
        master_path: Master contact dataset (``urn``, ``all_emails``) used by
            the batch verifier when no explicit path is given.
        exports_dir: Directory receiving the school map and ops-layer exports.
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    """

    work_dir: Path = Path("data/district_work")
    master_path: Path = Path("data/master_emails.csv")
    exports_dir: Path = Path("data/exports")
    log_level: str = "INFO"

    model_config = {"env_prefix": "", "case_sensitive": False}

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate that log_level is one of the accepted Python logging levels.

        Args:
            v: The raw log level string from the environment.

        Returns:
            The uppercased log level string if valid.

        Raises:
            ValueError: If the value is not a recognised logging level.
        """
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid:
            raise ValueError(f"log_level must be one of {valid}; got {v!r}")
        return upper

    @property
    def districts_dir(self) -> Path:
        """Directory containing one partition CSV per district."""
        return self.work_dir / "districts"

    @property
    def index_path(self) -> Path:
        """Location of the persisted queue index."""
        return self.work_dir / "district_index.csv"


def get_config() -> AppConfig:
    """Return the application configuration, resolved from environment variables.

    Environment variables read (case-insensitive):
        WORK_DIR: District work directory (default: ``data/district_work``).
        MASTER_PATH: Master contact dataset (default: ``data/master_emails.csv``).
        EXPORTS_DIR: Export output directory (default: ``data/exports``).
        LOG_LEVEL: Logging verbosity level (default: ``INFO``).

    Returns:
        An :class:`AppConfig` instance populated from the environment.
    """
    return AppConfig(
        _env_file=".env",
        _env_file_encoding="utf-8",
    )
