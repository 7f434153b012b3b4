import os
from pathlib import Path
from typing import Mapping, Optional

import yaml

from bbextract_core.errors import ConfigError

CLOUD_API_URL = "https://api.bitbucket.org/2.0"

DEFAULT_CONFIG: dict = {
    "variant": "server",  # "server" (Bitbucket Server / Data Center) or "cloud"
    "base_url": None,  # e.g. http://localhost:7990/rest; cloud defaults to CLOUD_API_URL
    "workspace": None,  # cloud workspace (organization); unused by the server variant
    "store": "sqlite",
    "store_path": ".bbextract.db",
    "database_url": None,  # required when store is "postgres"
    "error_policy": None,  # None = variant default (server: strict, cloud: best_effort)
    "page_limit": 1000,
    "pagelen": 50,
    "retries": 10,
    "retry_delay": 0.01,
    "retry_truncate": 10.0,
    "timeout": 30,
    "log_level": "INFO",
}

VARIANTS = ("server", "cloud")
STORES = ("sqlite", "postgres")
ERROR_POLICIES = ("strict", "best_effort")

_DEFAULT_POLICY = {"server": "strict", "cloud": "best_effort"}

# Environment variable -> config key. Applied after the config file.
_ENV_KEYS = {
    "BITBUCKET_URL": "base_url",
    "BITBUCKET_WORKSPACE": "workspace",
    "DATABASE_URL": "database_url",
    "LOGGING_LEVEL": "log_level",
}


def load_config(
    config_path: str = ".bbextract.yml",
    cli_overrides: Optional[dict] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> dict:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. .bbextract.yml in the current directory
      3. Environment variables
      4. CLI argument overrides
    """
    env = os.environ if environ is None else environ
    config = dict(DEFAULT_CONFIG)

    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            file_config = yaml.safe_load(f) or {}
        config.update(file_config)

    for env_key, key in _ENV_KEYS.items():
        value = env.get(env_key)
        if value:
            config[key] = value

    if cli_overrides:
        for key, value in cli_overrides.items():
            if value is not None:
                config[key] = value

    if config["variant"] == "cloud" and not config.get("base_url"):
        config["base_url"] = CLOUD_API_URL
    if not config.get("error_policy"):
        config["error_policy"] = _DEFAULT_POLICY.get(config["variant"], "strict")

    return config


def validate_config(config: dict) -> None:
    """Check a merged config once at startup. Raises ConfigError listing every problem."""
    problems = []

    variant = config.get("variant")
    if variant not in VARIANTS:
        problems.append(f"unknown variant {variant!r} (expected one of {', '.join(VARIANTS)})")
    if variant == "server" and not config.get("base_url"):
        problems.append("base_url is required for the server variant (set BITBUCKET_URL)")
    if variant == "cloud" and not config.get("workspace"):
        problems.append("workspace is required for the cloud variant (set BITBUCKET_WORKSPACE)")

    store = config.get("store")
    if store not in STORES:
        problems.append(f"unknown store {store!r} (expected one of {', '.join(STORES)})")
    if store == "postgres" and not config.get("database_url"):
        problems.append("database_url is required for the postgres store (set DATABASE_URL)")

    policy = config.get("error_policy")
    if policy not in ERROR_POLICIES:
        problems.append(f"unknown error_policy {policy!r} (expected one of {', '.join(ERROR_POLICIES)})")

    for key in ("page_limit", "pagelen", "retries"):
        value = config.get(key)
        if not isinstance(value, int) or value < 0 or (key != "retries" and value == 0):
            problems.append(f"{key} must be a positive integer, got {value!r}")

    if problems:
        raise ConfigError("Invalid configuration: " + "; ".join(problems))
