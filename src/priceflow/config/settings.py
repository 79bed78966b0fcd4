"""
Centralized settings and path configuration for the pricing engine.
"""
import os
from pathlib import Path
from dataclasses import dataclass
from typing import Optional


ENV_PREFIX = "PRICEFLOW_"


def get_project_root() -> Path:
    """Get the project root directory (where pyproject.toml lives)."""
    current = Path(__file__).resolve()
    for parent in current.parents:
        if (parent / 'pyproject.toml').exists():
            return parent
    # Fallback to 3 levels up from this file
    return Path(__file__).resolve().parent.parent.parent.parent


def _env(name: str, default: str) -> str:
    return os.environ.get(f"{ENV_PREFIX}{name}", default)


@dataclass
class Settings:
    """Application settings with sensible defaults."""

    # Project paths
    project_root: Path

    # Template snapshot exported by the persistence layer
    templates_snapshot: Path

    # Output files
    reports_dir: Path

    # Money formatting
    currency: str = "HUF"
    currency_suffix: str = "Ft"

    # Parser limits
    max_formula_length: int = 2000
    max_formula_depth: int = 64

    log_level: str = "INFO"

    @classmethod
    def load(cls, project_root: Optional[Path] = None) -> 'Settings':
        """Load settings from the project structure and PRICEFLOW_* env vars."""
        root = project_root or get_project_root()

        snapshot = _env("TEMPLATES_SNAPSHOT", "")
        reports = _env("REPORTS_DIR", "")

        return cls(
            project_root=root,
            templates_snapshot=Path(snapshot) if snapshot else root / 'data' / 'templates.json',
            reports_dir=Path(reports) if reports else root / 'data' / 'reports',
            currency=_env("CURRENCY", "HUF"),
            currency_suffix=_env("CURRENCY_SUFFIX", "Ft"),
            max_formula_length=int(_env("MAX_FORMULA_LENGTH", "2000")),
            max_formula_depth=int(_env("MAX_FORMULA_DEPTH", "64")),
            log_level=_env("LOG_LEVEL", "INFO").upper(),
        )


# Default settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings.load()
    return _settings


def reset_settings():
    """Drop the cached instance so the next get_settings() re-reads the environment."""
    global _settings
    _settings = None
