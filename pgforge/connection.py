"""Database connection discovery.

Looks for connection details the way a PostgREST project usually carries
them, in order:

1. an explicit URL or ``PGFORGE_DATABASE_URL``
2. ``db-uri`` in postgrest.conf
3. the postgres service in docker-compose.yml (``${VAR:-default}`` resolved from .env)
4. ``DATABASE_URL`` / ``POSTGRES_*`` / ``DB_*`` in .env files

Nothing here opens a connection. A missing configuration is not an error;
callers fall back to template generation.
"""

import os
import re
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import quote, unquote, urlparse

import yaml
from dotenv import dotenv_values
from dotenv.variables import parse_variables

from pgforge.config_runtime import find_postgrest_conf, read_postgrest_conf
from pgforge.utils.constants import DOCKER_COMPOSE_FILES, DOTENV_FILES, ENV_DATABASE_URL
from pgforge.utils.logging import logger

DOCKER_HOSTNAMES = ("postgres", "postgresql", "db", "database", "pg")
DEFAULT_PORT = 5432

_PORT_MAPPING = re.compile(r"^(?:[\d.]+:)?(\d+):5432(?:/tcp)?$")


@dataclass
class ConnectionInfo:
    host: str | None = None
    port: int = DEFAULT_PORT
    database: str | None = None
    user: str | None = None
    password: str | None = None
    source: str = "unknown"

    @property
    def conninfo(self) -> str:
        """libpq URL for psycopg.connect()."""
        auth = ""
        if self.user:
            auth = quote(self.user, safe="")
            if self.password:
                auth += ":" + quote(self.password, safe="")
            auth += "@"
        return f"postgresql://{auth}{self.host}:{self.port}/{quote(self.database or '', safe='')}"

    def validate(self) -> list[str]:
        """Names of required fields that are missing."""
        missing = []
        for field_name in ("host", "database", "user"):
            if not getattr(self, field_name):
                missing.append(field_name)
        if not 0 < self.port < 65536:
            missing.append("port")
        return missing

    def redacted(self) -> str:
        user = f"{self.user}@" if self.user else ""
        return f"postgresql://{user}{self.host}:{self.port}/{self.database} (from {self.source})"


def resolve_docker_host(host: str | None) -> str:
    """Map docker-compose service names to localhost for access from the host."""
    if not host:
        return "localhost"
    lowered = host.lower()
    if lowered in DOCKER_HOSTNAMES or lowered.endswith(("_db", "-db")):
        return "localhost"
    return host


def parse_database_url(url: str, source: str) -> ConnectionInfo | None:
    parsed = urlparse(url)
    if parsed.scheme not in ("postgres", "postgresql"):
        logger.debug(f"Ignoring non-PostgreSQL URL from {source}")
        return None
    try:
        port = parsed.port or DEFAULT_PORT
    except ValueError:
        logger.warning(f"Invalid port in database URL from {source}")
        return None
    return ConnectionInfo(
        host=resolve_docker_host(parsed.hostname),
        port=port,
        database=unquote(parsed.path.lstrip("/")) or None,
        user=unquote(parsed.username) if parsed.username else None,
        password=unquote(parsed.password) if parsed.password else None,
        source=source,
    )


def read_dotenv(path: Path) -> dict[str, str]:
    """Values of one .env file, with ``${VAR:-default}`` references expanded."""
    values = dotenv_values(path, interpolate=True)
    return {key: value for key, value in values.items() if value is not None}


def load_dotenv_files(root: Path) -> dict[str, str]:
    """Merge .env files; later files override earlier ones."""
    merged: dict[str, str] = {}
    for name in DOTENV_FILES:
        path = root / name
        if path.is_file():
            try:
                merged.update(read_dotenv(path))
            except OSError as e:
                logger.warning(f"Could not read {path}: {e}")
    return merged


def resolve_variables(value: str, env: dict[str, str]) -> str:
    """Expand ``${VAR}`` and ``${VAR:-default}``; .env values shadow the process environment."""
    lookup = {**os.environ, **env}
    return "".join(atom.resolve(lookup) for atom in parse_variables(str(value)))


def _from_postgrest_conf(root: Path) -> ConnectionInfo | None:
    path = find_postgrest_conf(root)
    if not path:
        return None
    try:
        values = read_postgrest_conf(path)
    except OSError as e:
        logger.warning(f"Could not read {path}: {e}")
        return None
    uri = values.get("db-uri")
    if not uri:
        return None
    env = load_dotenv_files(root)
    return parse_database_url(resolve_variables(uri, env), str(path))


def _service_environment(service: dict) -> dict[str, str]:
    environment = service.get("environment") or {}
    if isinstance(environment, list):
        pairs = (item.split("=", 1) for item in environment if isinstance(item, str) and "=" in item)
        return {k.strip(): v.strip() for k, v in pairs}
    if isinstance(environment, dict):
        return {str(k): "" if v is None else str(v) for k, v in environment.items()}
    return {}


def _published_port(service: dict) -> int:
    for mapping in service.get("ports") or []:
        if isinstance(mapping, dict):
            if mapping.get("target") == 5432 and mapping.get("published"):
                return int(mapping["published"])
            continue
        match = _PORT_MAPPING.match(str(mapping).strip())
        if match:
            return int(match.group(1))
    return DEFAULT_PORT


def _from_docker_compose(root: Path) -> ConnectionInfo | None:
    for name in DOCKER_COMPOSE_FILES:
        path = root / name
        if not path.is_file():
            continue
        try:
            with open(path, encoding="utf-8") as f:
                compose = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.debug(f"Could not parse {path}: {e}")
            continue
        env = load_dotenv_files(root)
        services = compose.get("services") or {}
        for service_name, service in services.items():
            if not isinstance(service, dict):
                continue
            environment = _service_environment(service)
            if "POSTGRES_DB" not in environment and "POSTGRES_USER" not in environment:
                continue
            user = resolve_variables(environment.get("POSTGRES_USER", "postgres"), env)
            database = resolve_variables(environment.get("POSTGRES_DB", user), env)
            password = resolve_variables(environment.get("POSTGRES_PASSWORD", ""), env)
            return ConnectionInfo(
                host="localhost",
                port=int(resolve_variables(str(_published_port(service)), env)),
                database=database or None,
                user=user or None,
                password=password or None,
                source=f"{path} (service {service_name})",
            )
    return None


def _from_dotenv(root: Path) -> ConnectionInfo | None:
    for name in DOTENV_FILES:
        path = root / name
        if not path.is_file():
            continue
        try:
            values = read_dotenv(path)
        except OSError as e:
            logger.warning(f"Could not read {path}: {e}")
            continue
        url = values.get("DATABASE_URL") or values.get("POSTGRES_URL") or values.get("DB_URL")
        if url:
            info = parse_database_url(url, str(path))
            if info:
                return info
        for prefix in ("POSTGRES", "DB"):
            database = values.get(f"{prefix}_DB") or values.get(f"{prefix}_NAME")
            user = values.get(f"{prefix}_USER")
            if database and user:
                try:
                    port = int(values.get(f"{prefix}_PORT", DEFAULT_PORT))
                except ValueError:
                    logger.warning(f"Invalid {prefix}_PORT in {path}")
                    port = DEFAULT_PORT
                return ConnectionInfo(
                    host=resolve_docker_host(values.get(f"{prefix}_HOST")),
                    port=port,
                    database=database,
                    user=user,
                    password=values.get(f"{prefix}_PASSWORD"),
                    source=str(path),
                )
    return None


def discover_connection(root: str | Path = ".", explicit_url: str | None = None) -> ConnectionInfo | None:
    """Return the first connection configuration found, or None."""
    root = Path(root)
    url = explicit_url or os.environ.get(ENV_DATABASE_URL)
    if url:
        info = parse_database_url(url, "command line" if explicit_url else ENV_DATABASE_URL)
        if info:
            return info

    for finder in (_from_postgrest_conf, _from_docker_compose, _from_dotenv):
        info = finder(root)
        if info:
            logger.debug(f"Database connection found: {info.redacted()}")
            return info

    logger.debug("No database connection configuration found")
    return None
