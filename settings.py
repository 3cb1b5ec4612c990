"""
Environment configuration.

Values come from a .env file (first found in: project dir, this module's dir, cwd)
and then the process environment. All keys are optional.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

DEFAULT_HOURS_PER_DAY = 8.0
DEFAULT_PERIOD_DAYS = 30.0
DEFAULT_LOG_LEVEL = "INFO"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Settings:
    hours_per_day: float = DEFAULT_HOURS_PER_DAY
    default_period_days: float = DEFAULT_PERIOD_DAYS
    log_level: str = DEFAULT_LOG_LEVEL
    config_file: str | None = None
    benchmarks_csv: str | None = None


def _load_env_from_project(project_dir: str | Path | None) -> None:
    candidates = [Path(__file__).resolve().parent, Path.cwd()]
    if project_dir is not None:
        candidates.insert(0, Path(project_dir))
    for d in candidates:
        env_file = d / ".env"
        if env_file.exists():
            load_dotenv(env_file)
            return


def _get_float(key: str, default: float) -> float:
    raw = os.getenv(key)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw.strip())
    except ValueError:
        logger.warning("Ignoring %s=%r: not a number", key, raw)
        return default
    if value <= 0:
        logger.warning("Ignoring %s=%r: must be positive", key, raw)
        return default
    return value


def _get_str(key: str) -> str | None:
    raw = os.getenv(key)
    if raw and raw.strip():
        return raw.strip()
    return None


def get_settings(project_dir: str | Path | None = None, load_env: bool = True) -> Settings:
    if load_env:
        _load_env_from_project(project_dir)
    return Settings(
        hours_per_day=_get_float("KPI_HOURS_PER_DAY", DEFAULT_HOURS_PER_DAY),
        default_period_days=_get_float("KPI_DEFAULT_PERIOD_DAYS", DEFAULT_PERIOD_DAYS),
        log_level=(_get_str("KPI_LOG_LEVEL") or DEFAULT_LOG_LEVEL).upper(),
        config_file=_get_str("KPI_CONFIG_FILE"),
        benchmarks_csv=_get_str("KPI_BENCHMARKS_CSV"),
    )


def configure_logging(level: str = DEFAULT_LOG_LEVEL) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )
