"""Table-folder layout for generated SQL.

    sql/
      roles.sql
      schemas/
        functions.sql        schema-wide functions
        views.sql            schema-wide views
        <table>/
          rls.sql  indexes.sql  triggers.sql  functions.sql  views.sql  analysis.sql
"""

from enum import Enum
from pathlib import Path

from pgforge.errors import MergeParseError
from pgforge.models import SQLFileState
from pgforge.sqlblocks import identity_keys
from pgforge.utils.constants import ROLES_FILE_NAME, SCHEMAS_DIR_NAME, SQL_DIR_NAME
from pgforge.utils.logging import logger


class ArtifactKind(Enum):
    RLS = "rls"
    INDEXES = "indexes"
    TRIGGERS = "triggers"
    FUNCTIONS = "functions"
    VIEWS = "views"
    ANALYSIS = "analysis"
    ROLES = "roles"

    @property
    def file_name(self) -> str:
        return ROLES_FILE_NAME if self is ArtifactKind.ROLES else f"{self.value}.sql"


SCHEMA_WIDE_KINDS = (ArtifactKind.FUNCTIONS, ArtifactKind.VIEWS)


class TableFolderStore:
    """Maps (artifact kind, table) to files; creates directories only on write."""

    def __init__(self, root: str | Path = ".", sql_dir: str = SQL_DIR_NAME):
        self.root = Path(root)
        self.sql_root = self.root / sql_dir
        self.schemas_root = self.sql_root / SCHEMAS_DIR_NAME

    def path_for(self, kind: ArtifactKind, table: str | None = None) -> Path:
        if kind is ArtifactKind.ROLES:
            return self.sql_root / kind.file_name
        if table is None:
            if kind not in SCHEMA_WIDE_KINDS:
                raise ValueError(f"{kind.value} artifacts belong to a table")
            return self.schemas_root / kind.file_name
        return self.schemas_root / table / kind.file_name

    def read(self, path: Path) -> SQLFileState:
        if not path.is_file():
            return SQLFileState(path=path)
        text = path.read_text(encoding="utf-8")
        try:
            keys = identity_keys(text)
        except MergeParseError as e:
            # The merge engine reports the degradation; here we only snapshot
            logger.debug(f"Could not index {path}: {e}")
            keys = []
        return SQLFileState(path=path, existing_text=text, existing_identity_keys=keys)

    def write(self, path: Path, text: str) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        logger.debug(f"Wrote {len(text)} bytes to {path}")
        return path

    def list_table_folders(self) -> list[str]:
        if not self.schemas_root.is_dir():
            return []
        return sorted(p.name for p in self.schemas_root.iterdir() if p.is_dir())
