"""Runtime configuration for pgforge - centralized configuration management."""

import copy
import json
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from pgforge.utils.constants import CONFIG_FILE_NAME, ENV_PREFIX, POSTGREST_CONF_FILES, STATE_DIR
from pgforge.utils.logging import logger

DEFAULTS = {
    "postgrest": {
        "schema": "api",
        "anon_role": "web_anon",
        "authenticated_role": "authenticated",
        "admin_role": "admin",
        "authenticator_role": "authenticator",
        "server_host": "0.0.0.0",
        "server_port": 3000,
    },
    "output": {
        "sql_dir": "sql",
        "header": True,
    },
    "database": {
        "connect_timeout": 5,
    },
}

# postgrest.conf key -> (section, key)
POSTGREST_CONF_KEYS = {
    "db-schemas": ("postgrest", "schema"),
    "db-schema": ("postgrest", "schema"),
    "db-anon-role": ("postgrest", "anon_role"),
    "server-host": ("postgrest", "server_host"),
    "server-port": ("postgrest", "server_port"),
}

_CONF_LINE = re.compile(r"^\s*([A-Za-z0-9_.-]+)\s*=\s*(.*?)\s*$")

_TRUE = ("1", "true", "yes", "on")
_FALSE = ("0", "false", "no", "off")


@dataclass(frozen=True)
class PostgrestSettings:
    """The PostgREST role and schema names every generator renders against."""

    schema: str = "api"
    anon_role: str = "web_anon"
    authenticated_role: str = "authenticated"
    admin_role: str = "admin"
    authenticator_role: str = "authenticator"
    server_host: str = "0.0.0.0"
    server_port: int = 3000

    @classmethod
    def from_config(cls, cfg: dict[str, Any]) -> "PostgrestSettings":
        section = cfg.get("postgrest", {})
        return cls(**{k: v for k, v in section.items() if k in cls.__dataclass_fields__})


def find_postgrest_conf(root: str | Path = ".") -> Path | None:
    for name in POSTGREST_CONF_FILES:
        path = Path(root) / name
        if path.is_file():
            return path
    return None


def read_postgrest_conf(path: Path) -> dict[str, str]:
    """Parse a postgrest.conf file into raw ``key -> value`` strings.

    Comments (``#``) and blank lines are skipped; surrounding quotes are
    stripped from values.
    """
    values: dict[str, str] = {}
    with open(path, encoding="utf-8") as f:
        for line in f:
            stripped = line.strip()
            if not stripped or stripped.startswith("#"):
                continue
            match = _CONF_LINE.match(stripped)
            if not match:
                continue
            key, value = match.groups()
            if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
                value = value[1:-1]
            values[key] = value
    return values


def _coerce(value: Any, default: Any) -> Any:
    """Coerce ``value`` to the type of ``default``; raises ValueError on mismatch."""
    if isinstance(default, bool):
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
        raise ValueError(f"expected a boolean, got {value!r}")
    if isinstance(default, int):
        if isinstance(value, bool):
            raise ValueError(f"expected an integer, got {value!r}")
        return int(value)
    if isinstance(default, float):
        return float(value)
    if isinstance(default, list):
        if isinstance(value, list):
            return value
        return [v.strip() for v in str(value).split(",")]
    if not isinstance(value, str):
        raise ValueError(f"expected a string, got {value!r}")
    return value


def load_runtime_config(root: str = ".") -> dict[str, Any]:
    """
    Load runtime configuration from postgrest.conf, .pgforge/config.json and
    environment variables.

    Config priority (highest to lowest):
    1. Environment variables (PGFORGE_<SECTION>_<KEY>)
    2. .pgforge/config.json file
    3. postgrest.conf (schema, anon role, server host and port)
    4. Built-in defaults

    Args:
        root: Root directory to look for config files

    Returns:
        Configuration dictionary with merged values
    """
    cfg = copy.deepcopy(DEFAULTS)

    conf_path = find_postgrest_conf(root)
    if conf_path:
        try:
            raw = read_postgrest_conf(conf_path)
        except OSError as e:
            logger.warning(f"Could not read {conf_path}: {e}")
            raw = {}
        for conf_key, (section, key) in POSTGREST_CONF_KEYS.items():
            if conf_key not in raw:
                continue
            value = raw[conf_key]
            if key == "schema":
                # db-schemas may list several; the first one is exposed by default
                value = value.split(",")[0].strip()
            try:
                cfg[section][key] = _coerce(value, DEFAULTS[section][key])
            except ValueError as e:
                logger.warning(f"Ignoring {conf_key} from {conf_path}: {e}")

    path = Path(root) / STATE_DIR / CONFIG_FILE_NAME
    try:
        if path.exists():
            with open(path, encoding="utf-8") as f:
                user = json.load(f)

            if isinstance(user, dict):
                for section in DEFAULTS:
                    if section in user and isinstance(user[section], dict):
                        for key, value in user[section].items():
                            if key not in cfg[section]:
                                logger.warning(f"Unknown config key {section}.{key} in {path}")
                                continue
                            try:
                                cfg[section][key] = _coerce(value, DEFAULTS[section][key])
                            except ValueError as e:
                                logger.warning(f"Ignoring {section}.{key} in {path}: {e}")
    except (json.JSONDecodeError, OSError) as e:
        logger.warning(f"Could not load config file from {path}: {e}")
        logger.info("Continuing with default configuration")

    for section in cfg:
        for key in cfg[section]:
            env_var = f"{ENV_PREFIX}_{section.upper()}_{key.upper()}"
            if env_var in os.environ:
                value = os.environ[env_var]
                try:
                    cfg[section][key] = _coerce(value, DEFAULTS[section][key])
                except ValueError as e:
                    logger.warning(f"Invalid value for environment variable {env_var}: '{value}' - {e}")
                    logger.info(f"Using value: {cfg[section][key]}")

    return cfg
