"""PostgreSQL function generation (``functions.sql``)."""

from dataclasses import dataclass

from pgforge.config_runtime import PostgrestSettings
from pgforge.errors import GenerationError
from pgforge.models import Column, GeneratedArtifact, IdentityKey, ObjectKind, SQLFragment

from .base import fragment, qualified, sql_literal


@dataclass(frozen=True)
class FunctionSpec:
    """Everything needed to render one CREATE FUNCTION."""

    schema: str
    name: str
    params: str
    returns: str
    body: str
    description: str
    language: str = "plpgsql"
    volatility: str = ""
    security_definer: bool = False
    grant_to: tuple[str, ...] = ()

    @property
    def qualified_name(self) -> str:
        return qualified(self.schema, self.name)

    @property
    def signature(self) -> str:
        """Argument types only, as used by GRANT and COMMENT."""
        types = []
        for param in filter(None, (p.strip() for p in self.params.split(","))):
            words = param.split()
            if "DEFAULT" in (w.upper() for w in words):
                words = words[: [w.upper() for w in words].index("DEFAULT")]
            types.append(" ".join(words[1:]) if len(words) > 1 else words[0])
        return f"{self.qualified_name}({', '.join(types)})"


class FunctionGenerator:
    """Auth helpers, CRUD sets, utility templates and custom skeletons."""

    def __init__(self, settings: PostgrestSettings):
        self.settings = settings

    # ------------------------------------------------------------------
    # rendering
    # ------------------------------------------------------------------

    def render(self, spec: FunctionSpec) -> list[SQLFragment]:
        key = IdentityKey(ObjectKind.FUNCTION, spec.qualified_name)
        modifiers = " ".join(
            filter(None, [f"LANGUAGE {spec.language}", spec.volatility, "SECURITY DEFINER" if spec.security_definer else ""])
        )
        fragments = [
            fragment(
                f"Function: {spec.description}",
                f"CREATE OR REPLACE FUNCTION {spec.qualified_name}({spec.params})\n"
                f"RETURNS {spec.returns} AS $$\n{spec.body.rstrip()}\n$$ {modifiers}",
                key=key,
            )
        ]
        for role in spec.grant_to:
            fragments.append(
                fragment(
                    None,
                    f"GRANT EXECUTE ON FUNCTION {spec.signature} TO {role}",
                    key=key,
                    attached=True,
                )
            )
        fragments.append(
            fragment(
                None,
                f"COMMENT ON FUNCTION {spec.signature} IS {sql_literal(spec.description)}",
                key=key,
                attached=True,
            )
        )
        return fragments

    def _artifact(self, title: str, specs: list[FunctionSpec], preamble: list[SQLFragment] = ()) -> GeneratedArtifact:
        artifact = GeneratedArtifact(kind="functions", title=title, fragments=list(preamble))
        for spec in specs:
            artifact.fragments.extend(self.render(spec))
        return artifact

    # ------------------------------------------------------------------
    # auth
    # ------------------------------------------------------------------

    def auth_functions(self) -> GeneratedArtifact:
        s = self.settings
        everyone = (s.anon_role, s.authenticated_role)
        claims = "current_setting('request.jwt.claims', true)::json"
        specs = [
            FunctionSpec(
                "auth", "current_user_id", "", "UUID",
                "  SELECT COALESCE(\n"
                f"    ({claims}->>'sub')::uuid,\n"
                f"    ({claims}->>'user_id')::uuid\n"
                "  );",
                "Current user id from the JWT claims",
                language="sql", volatility="STABLE", grant_to=everyone,
            ),
            FunctionSpec(
                "auth", "current_user_role", "", "TEXT",
                "  SELECT COALESCE(\n"
                f"    {claims}->>'role',\n"
                f"    CASE WHEN auth.current_user_id() IS NOT NULL THEN '{s.authenticated_role}' ELSE '{s.anon_role}' END\n"
                "  );",
                "Current user role from the JWT claims",
                language="sql", volatility="STABLE", grant_to=everyone,
            ),
            FunctionSpec(
                "auth", "current_user_email", "", "TEXT",
                f"  SELECT {claims}->>'email';",
                "Current user email from the JWT claims",
                language="sql", volatility="STABLE", grant_to=everyone,
            ),
            FunctionSpec(
                "auth", "is_admin", "", "BOOLEAN",
                f"  SELECT auth.current_user_role() = '{s.admin_role}';",
                "True when the request carries the admin role",
                language="sql", volatility="STABLE", grant_to=everyone,
            ),
            FunctionSpec(
                "auth", "is_authenticated", "", "BOOLEAN",
                "  SELECT auth.current_user_id() IS NOT NULL;",
                "True when the request carries a user id",
                language="sql", volatility="STABLE", grant_to=everyone,
            ),
            FunctionSpec(
                "auth", "owns_resource", "resource_user_id UUID", "BOOLEAN",
                "  SELECT resource_user_id = auth.current_user_id() OR auth.is_admin();",
                "True when the current user owns the row or is an admin",
                language="sql", volatility="STABLE", grant_to=everyone,
            ),
            FunctionSpec(
                "auth", "encrypt_password", "password TEXT", "TEXT",
                "BEGIN\n"
                "  IF password IS NULL OR length(trim(password)) = 0 THEN\n"
                "    RAISE EXCEPTION 'Password cannot be empty';\n"
                "  END IF;\n"
                "  RETURN crypt(password, gen_salt('bf', 10));\n"
                "END;",
                "Hash a password with bcrypt",
                security_definer=True,
            ),
            FunctionSpec(
                "auth", "verify_password", "password TEXT, hash TEXT", "BOOLEAN",
                "BEGIN\n"
                "  IF password IS NULL OR hash IS NULL THEN\n"
                "    RETURN FALSE;\n"
                "  END IF;\n"
                "  RETURN hash = crypt(password, hash);\n"
                "END;",
                "Compare a password against a bcrypt hash",
                security_definer=True,
            ),
        ]
        preamble = [
            fragment("Schema for authentication helpers", "CREATE SCHEMA IF NOT EXISTS auth"),
            fragment("Password hashing support", "CREATE EXTENSION IF NOT EXISTS pgcrypto"),
            fragment(
                "Let API roles call the auth helpers",
                f"GRANT USAGE ON SCHEMA auth TO {s.anon_role}, {s.authenticated_role}",
            ),
        ]
        return self._artifact("Authentication helper functions", specs, preamble)

    # ------------------------------------------------------------------
    # crud
    # ------------------------------------------------------------------

    def crud_functions(
        self, table: str, primary_key: Column | None = None, schema: str | None = None
    ) -> GeneratedArtifact:
        """create_/get_/update_/delete_<table> built on jsonb_populate_record."""
        schema = schema or self.settings.schema
        target = qualified(schema, table)
        pk_name = primary_key.name if primary_key else "id"
        pk_type = primary_key.type if primary_key else "UUID"
        grant = (self.settings.authenticated_role,)
        fmt_target = f"{sql_literal(schema)}, {sql_literal(table)}"

        specs = [
            FunctionSpec(
                schema, f"create_{table}", "payload JSONB", target,
                "DECLARE\n"
                "  cols TEXT;\n"
                f"  result {target};\n"
                "BEGIN\n"
                "  SELECT string_agg(quote_ident(key), ', ') INTO cols FROM jsonb_object_keys(payload) AS key;\n"
                "  EXECUTE format(\n"
                "    'INSERT INTO %I.%I (%s) SELECT %s FROM jsonb_populate_record(NULL::%I.%I, $1) RETURNING *',\n"
                f"    {fmt_target}, cols, cols, {fmt_target}\n"
                "  ) INTO result USING payload;\n"
                "  RETURN result;\n"
                "END;",
                f"Create a {table} row from a JSON payload",
                grant_to=grant,
            ),
            FunctionSpec(
                schema, f"get_{table}", f"p_{pk_name} {pk_type}", target,
                f"  SELECT * FROM {target} WHERE {pk_name} = p_{pk_name};",
                f"Fetch one {table} row by {pk_name}",
                language="sql", volatility="STABLE", grant_to=grant,
            ),
            FunctionSpec(
                schema, f"update_{table}", f"p_{pk_name} {pk_type}, payload JSONB", target,
                "DECLARE\n"
                "  cols TEXT;\n"
                f"  result {target};\n"
                "BEGIN\n"
                "  SELECT string_agg(quote_ident(key), ', ') INTO cols FROM jsonb_object_keys(payload) AS key;\n"
                "  EXECUTE format(\n"
                "    'UPDATE %I.%I SET (%s) = (SELECT %s FROM jsonb_populate_record(NULL::%I.%I, $1)) '\n"
                f"    'WHERE {pk_name} = $2 RETURNING *',\n"
                f"    {fmt_target}, cols, cols, {fmt_target}\n"
                f"  ) INTO result USING payload, p_{pk_name};\n"
                "  RETURN result;\n"
                "END;",
                f"Update a {table} row from a JSON payload",
                grant_to=grant,
            ),
            FunctionSpec(
                schema, f"delete_{table}", f"p_{pk_name} {pk_type}", "BOOLEAN",
                "BEGIN\n"
                f"  DELETE FROM {target} WHERE {pk_name} = p_{pk_name};\n"
                "  RETURN FOUND;\n"
                "END;",
                f"Delete a {table} row by {pk_name}",
                grant_to=grant,
            ),
        ]
        return self._artifact(f"CRUD functions for {target}", specs)

    # ------------------------------------------------------------------
    # utility
    # ------------------------------------------------------------------

    def utility_function(
        self, name: str, table: str | None = None, columns: list[Column] | None = None,
        schema: str | None = None,
    ) -> GeneratedArtifact:
        """Pick a utility template from keywords in the function name."""
        schema = schema or self.settings.schema
        lowered = name.lower()
        grant = (self.settings.anon_role, self.settings.authenticated_role)
        preamble: list[SQLFragment] = []

        if "email" in lowered:
            spec = FunctionSpec(
                schema, name, "email TEXT", "BOOLEAN",
                "  SELECT email ~* '^[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\\.[A-Za-z]{2,}$';",
                "Validate an email address format",
                language="sql", volatility="IMMUTABLE", grant_to=grant,
            )
        elif "phone" in lowered:
            spec = FunctionSpec(
                schema, name, "phone TEXT", "BOOLEAN",
                "  SELECT phone ~ '^\\+?[0-9 ()-]{7,20}$';",
                "Validate a phone number format",
                language="sql", volatility="IMMUTABLE", grant_to=grant,
            )
        elif "slug" in lowered:
            spec = FunctionSpec(
                schema, name, "input TEXT", "TEXT",
                "  SELECT trim(BOTH '-' FROM regexp_replace(lower(input), '[^a-z0-9]+', '-', 'g'));",
                "Turn arbitrary text into a URL slug",
                language="sql", volatility="IMMUTABLE", grant_to=grant,
            )
        elif "random" in lowered or "token" in lowered or lowered.endswith("_id"):
            preamble.append(fragment("Random bytes support", "CREATE EXTENSION IF NOT EXISTS pgcrypto"))
            spec = FunctionSpec(
                schema, name, "length INTEGER DEFAULT 16", "TEXT",
                "  SELECT encode(gen_random_bytes(length), 'hex');",
                "Generate a random hexadecimal identifier",
                language="sql", volatility="VOLATILE", grant_to=grant,
            )
        elif "day" in lowered:
            bound = "end" if "end" in lowered else "start"
            expr = (
                "date_trunc('day', ts) + INTERVAL '1 day' - INTERVAL '1 microsecond'"
                if bound == "end"
                else "date_trunc('day', ts)"
            )
            spec = FunctionSpec(
                schema, name, "ts TIMESTAMPTZ", "TIMESTAMPTZ",
                f"  SELECT {expr};",
                f"Return the {bound} of the day containing a timestamp",
                language="sql", volatility="IMMUTABLE", grant_to=grant,
            )
        elif "search" in lowered and table:
            text_cols = [
                c.name for c in (columns or [])
                if any(t in c.type.lower() for t in ("text", "varchar", "character"))
            ] or ["name"]
            document = " || ' ' || ".join(f"coalesce({c}, '')" for c in text_cols)
            spec = FunctionSpec(
                schema, name, "query TEXT", f"SETOF {qualified(schema, table)}",
                f"  SELECT * FROM {qualified(schema, table)}\n"
                f"  WHERE to_tsvector('english', {document}) @@ plainto_tsquery('english', query);",
                f"Full-text search over {table}",
                language="sql", volatility="STABLE", grant_to=grant,
            )
        else:
            return self.custom_function(name, schema=schema)
        return self._artifact(f"Utility function {qualified(schema, name)}", [spec], preamble)

    # ------------------------------------------------------------------
    # custom
    # ------------------------------------------------------------------

    def custom_function(
        self,
        name: str,
        params: str = "",
        returns: str = "VOID",
        language: str = "plpgsql",
        security_definer: bool = False,
        schema: str | None = None,
    ) -> GeneratedArtifact:
        schema = schema or self.settings.schema
        if language not in ("plpgsql", "sql"):
            raise GenerationError(f"Unsupported function language: {language}")
        if language == "sql":
            body = "  SELECT NULL;"
        elif returns.upper() == "VOID":
            body = "BEGIN\n  -- Add function logic here\n  RETURN;\nEND;"
        else:
            body = "BEGIN\n  -- Add function logic here\n  RETURN NULL;\nEND;"
        spec = FunctionSpec(
            schema, name, params, returns, body,
            f"Custom function {name}",
            language=language,
            security_definer=security_definer,
            grant_to=(self.settings.authenticated_role,),
        )
        return self._artifact(f"Function {qualified(schema, name)}", [spec])
