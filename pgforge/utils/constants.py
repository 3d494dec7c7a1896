"""Centralized constants for pgforge.

Single source of truth for paths, file names and environment variable names
used across the package.
"""

from pathlib import Path

# ============================================================================
# OUTPUT DIRECTORIES
# ============================================================================

# Working directory for pgforge state (config, logs)
STATE_DIR = Path("./.pgforge")

ERROR_LOG_FILE = STATE_DIR / "error.log"
CONFIG_FILE_NAME = "config.json"

# Generated SQL layout
SQL_DIR_NAME = "sql"
SCHEMAS_DIR_NAME = "schemas"
ROLES_FILE_NAME = "roles.sql"

# ============================================================================
# PROJECT FILES
# ============================================================================

POSTGREST_CONF_FILES = ("postgrest.conf", "postgrest/postgrest.conf", "config/postgrest.conf")
DOCKER_COMPOSE_FILES = (
    "docker-compose.yml",
    "docker-compose.yaml",
    "compose.yml",
    "compose.yaml",
)
DOTENV_FILES = (".env", ".env.local")

# ============================================================================
# POSTGRES LIMITS
# ============================================================================

MAX_IDENTIFIER_LENGTH = 63

# Tables over this size get a performance warning (bytes)
LARGE_TABLE_BYTES = 10 * 1024 * 1024

# ============================================================================
# ENVIRONMENT VARIABLES
# ============================================================================

ENV_PREFIX = "PGFORGE"
ENV_DATABASE_URL = "PGFORGE_DATABASE_URL"
ENV_LOG_LEVEL = "PGFORGE_LOG_LEVEL"
ENV_LOG_JSON = "PGFORGE_LOG_JSON"
ENV_LOG_FILE = "PGFORGE_LOG_FILE"
