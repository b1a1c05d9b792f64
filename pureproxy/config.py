"""Configuration utilities for PureProxy validation runs.

This module reads environment variables (optionally from an `.env` file) and
produces an application configuration object consumed across the project.

See `.env.example` for supported keys, including `DATABASE_URL` (or
`HOST`/`USER`/`PASSWORD`/`DB`/`PORT`), `LOG_DIR`, `LOG_LEVEL`, `APP_NAME`,
`EXCLUDED_CIDRS`, `GEO_API_URL`, `GEO_LANG` and `SCORING_CONFIG`.

Usage example:

    from pureproxy.config import load_config

    config = load_config()
    client = DatabaseClient(config.database_url)
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping, MutableMapping, Optional, Tuple
from urllib.parse import quote_plus

REPO_ROOT = Path(__file__).resolve().parents[1]
DEFAULT_ENV_FILE = REPO_ROOT / ".env"
DEFAULT_GEO_API_URL = "http://ip-api.com/json/{ip}"

# IPv4 ranges announced by Cloudflare, which fronts the service. Addresses in
# these blocks are the platform itself and never a third-party relay.
CLOUDFLARE_IPV4_CIDRS: Tuple[str, ...] = (
    "173.245.48.0/20",
    "103.21.244.0/22",
    "103.22.200.0/22",
    "103.31.4.0/22",
    "141.101.64.0/18",
    "108.162.192.0/18",
    "190.93.240.0/20",
    "188.114.96.0/20",
    "197.234.240.0/22",
    "198.41.128.0/17",
    "162.158.0.0/15",
    "104.16.0.0/13",
    "104.24.0.0/14",
    "172.64.0.0/13",
    "131.0.72.0/22",
)


def _load_env_file(path: Path) -> Dict[str, str]:
    """Parse a dotenv-style file into a dictionary."""
    if not path.exists():
        return {}

    data: Dict[str, str] = {}
    for raw_line in path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        data[key.strip()] = value.strip().strip("\"'")
    return data


def _component(
    values: Mapping[str, str],
    dotenv_values: Mapping[str, str],
    specific: str,
    generic: str,
) -> Optional[str]:
    # Generic names such as USER collide with shell variables, so the dotenv
    # file wins for those.
    return (
        values.get(specific)
        or dotenv_values.get(generic)
        or values.get(generic)
    )


def _build_database_url_from_components(
    values: Mapping[str, str], dotenv_values: Mapping[str, str]
) -> Optional[str]:
    """Construct a PostgreSQL DSN from discrete HOST/USER/PASSWORD/DB keys."""
    host = _component(values, dotenv_values, "DATABASE_HOST", "HOST")
    user = _component(values, dotenv_values, "DATABASE_USER", "USER")
    password = _component(values, dotenv_values, "DATABASE_PASSWORD", "PASSWORD")
    database = _component(values, dotenv_values, "DATABASE_NAME", "DB")
    port = (
        _component(values, dotenv_values, "DATABASE_PORT", "DB_PORT")
        or _component(values, dotenv_values, "DATABASE_PORT", "PORT")
        or "5432"
    )

    if not all([host, user, password, database]):
        return None

    return (
        f"postgresql://{quote_plus(user)}:{quote_plus(password)}"
        f"@{host.strip()}:{port}/{database.strip()}"
    )


def _parse_cidr_list(raw: Optional[str]) -> Tuple[str, ...]:
    if not raw:
        return CLOUDFLARE_IPV4_CIDRS
    return tuple(part.strip() for part in raw.split(",") if part.strip())


@dataclass(frozen=True)
class AppConfig:
    """Application-level configuration values."""

    database_url: Optional[str]
    log_directory: Path
    log_level: str
    app_name: str = "pureproxy"
    excluded_cidrs: Tuple[str, ...] = CLOUDFLARE_IPV4_CIDRS
    geo_api_url: str = DEFAULT_GEO_API_URL
    geo_lang: str = "en"
    scoring_config: Optional[Path] = None


def _merge_envs(dotenv_values: Mapping[str, str], env: MutableMapping[str, str]) -> Dict[str, str]:
    """Merge dotenv values with the current environment, preferring os.environ."""
    merged = dict(dotenv_values)
    merged.update(env)  # os.environ wins
    return merged


def load_config(env_file: Optional[Path] = None, *, require_database: bool = True) -> AppConfig:
    """Load configuration values using environment defaults.

    Args:
        env_file: Optional dotenv file; defaults to ``REPO_ROOT/.env``.
        require_database: Raise when no database DSN can be resolved. Dry runs
            backed by the in-memory store pass False.

    Raises:
        ValueError: If a database DSN is required but not configured.
    """
    dotenv_values = _load_env_file(env_file or DEFAULT_ENV_FILE)
    merged = _merge_envs(dotenv_values, os.environ)

    database_url = merged.get("DATABASE_URL") or _build_database_url_from_components(
        merged, dotenv_values
    )
    if not database_url and require_database:
        raise ValueError("DATABASE_URL (or HOST/USER/PASSWORD/DB combination) must be defined.")

    log_directory = Path(merged.get("LOG_DIR", REPO_ROOT / "logs"))
    if not log_directory.is_absolute():
        log_directory = REPO_ROOT / log_directory

    scoring_config = merged.get("SCORING_CONFIG")

    return AppConfig(
        database_url=database_url,
        log_directory=log_directory,
        log_level=merged.get("LOG_LEVEL", "INFO").upper(),
        app_name=merged.get("APP_NAME", "pureproxy"),
        excluded_cidrs=_parse_cidr_list(merged.get("EXCLUDED_CIDRS")),
        geo_api_url=merged.get("GEO_API_URL", DEFAULT_GEO_API_URL),
        geo_lang=merged.get("GEO_LANG", "en"),
        scoring_config=Path(scoring_config) if scoring_config else None,
    )


__all__ = [
    "AppConfig",
    "CLOUDFLARE_IPV4_CIDRS",
    "load_config",
    "REPO_ROOT",
]
