"""
Run configuration.

Settings are read once from the environment (optionally seeded from a .env
file, see env.py) into an immutable dataclass that is passed explicitly to
every component. CLI flags override individual fields with
dataclasses.replace().
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from .errors import ConfigurationError

BACKENDS = ("sql", "elastic")

ENV_PREFIX = "CATALOGSIM_"


@dataclass(frozen=True)
class Settings:
    backend: str = "sql"
    db_path: Path = Path("data/catalog.db")
    es_url: str = "http://localhost:9200"
    index: str = "catalog"
    record_type: str = "RecomMetadata"
    output_type: str = "MetadataFeatureSim"
    id_field: str = "Dataset-ShortName"
    feature_model: str = "podaac"
    batch_size: int = 1000
    page_size: int = 100
    workers: int = 1
    concurrent_requests: int = 1
    log_level: str = "INFO"
    log_dir: Path = Path("logs")

    def validate(self) -> "Settings":
        """Raise ConfigurationError on an unusable combination of values."""
        if self.backend not in BACKENDS:
            raise ConfigurationError(
                f"Unknown backend '{self.backend}'. Use one of: {', '.join(BACKENDS)}"
            )
        for name in ("batch_size", "page_size", "workers", "concurrent_requests"):
            if getattr(self, name) < 1:
                raise ConfigurationError(f"{name} must be a positive integer")
        for name in ("index", "record_type", "output_type", "id_field", "feature_model"):
            if not getattr(self, name).strip():
                raise ConfigurationError(f"{name} must not be empty")
        return self


def _env_int(environ: Mapping[str, str], key: str, default: int) -> int:
    raw = environ.get(ENV_PREFIX + key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{ENV_PREFIX}{key} must be an integer, got '{raw}'")


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build Settings from environment variables.

    Args:
        environ: Mapping to read from (default: os.environ)

    Returns:
        Validated Settings

    Raises:
        ConfigurationError: On malformed or out-of-range values
    """
    env = os.environ if environ is None else environ
    defaults = Settings()

    def text(key: str, default: str) -> str:
        value = env.get(ENV_PREFIX + key)
        return value.strip() if value and value.strip() else default

    settings = Settings(
        backend=text("BACKEND", defaults.backend).lower(),
        db_path=Path(text("DB_PATH", str(defaults.db_path))),
        es_url=text("ES_URL", defaults.es_url).rstrip("/"),
        index=text("INDEX", defaults.index),
        record_type=text("RECORD_TYPE", defaults.record_type),
        output_type=text("OUTPUT_TYPE", defaults.output_type),
        id_field=text("ID_FIELD", defaults.id_field),
        feature_model=text("FEATURE_MODEL", defaults.feature_model),
        batch_size=_env_int(env, "BATCH_SIZE", defaults.batch_size),
        page_size=_env_int(env, "PAGE_SIZE", defaults.page_size),
        workers=_env_int(env, "WORKERS", defaults.workers),
        concurrent_requests=_env_int(env, "CONCURRENT_REQUESTS", defaults.concurrent_requests),
        log_level=text("LOG_LEVEL", defaults.log_level).upper(),
        log_dir=Path(text("LOG_DIR", str(defaults.log_dir))),
    )
    return settings.validate()
