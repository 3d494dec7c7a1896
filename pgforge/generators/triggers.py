"""Trigger function and trigger generation (``triggers.sql``)."""

from pgforge.config_runtime import PostgrestSettings
from pgforge.models import (
    Column,
    GeneratedArtifact,
    IdentityKey,
    ObjectKind,
    SQLFragment,
    TriggerType,
)

from .base import fragment, qualified, sql_literal

# (function name template, trigger name template, timing and events)
TRIGGER_LAYOUT = {
    TriggerType.TIMESTAMP: ("update_timestamp_{t}", "update_{t}_timestamp", "BEFORE UPDATE"),
    TriggerType.TIMESTAMP_FULL: (
        "manage_timestamps_{t}",
        "manage_{t}_timestamps",
        "BEFORE INSERT OR UPDATE",
    ),
    TriggerType.AUDIT: ("audit_{t}", "audit_{t}_changes", "AFTER INSERT OR UPDATE OR DELETE"),
    TriggerType.VALIDATION: ("validate_{t}", "validate_{t}_data", "BEFORE INSERT OR UPDATE"),
    TriggerType.SECURITY: (
        "security_monitor_{t}",
        "security_monitor_{t}_ops",
        "AFTER INSERT OR UPDATE OR DELETE",
    ),
    TriggerType.SOFT_DELETE: (
        "protect_soft_delete_{t}",
        "soft_delete_{t}_protection",
        "BEFORE DELETE",
    ),
    TriggerType.BASIC: ("trigger_{t}", "{t}_trigger", "BEFORE INSERT OR UPDATE"),
}

EMAIL_PATTERN = r"^[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$"
PHONE_PATTERN = r"^\+?[0-9 ()-]{7,20}$"
URL_PATTERN = r"^https?://"
NON_NEGATIVE_HINTS = ("amount", "price", "cost", "balance", "salary", "fee")


def trigger_name_for(trigger_type: TriggerType, table: str) -> str:
    return TRIGGER_LAYOUT[trigger_type][1].format(t=table).lower()


def function_name_for(trigger_type: TriggerType, table: str) -> str:
    return TRIGGER_LAYOUT[trigger_type][0].format(t=table).lower()


def resolve_trigger_types(types: list[TriggerType]) -> list[TriggerType]:
    """Drop the plain timestamp trigger when full timestamp management is requested."""
    ordered = list(dict.fromkeys(types))
    if TriggerType.TIMESTAMP_FULL in ordered and TriggerType.TIMESTAMP in ordered:
        ordered.remove(TriggerType.TIMESTAMP)
    return ordered


class TriggerGenerator:
    """Render trigger types for a table as function + trigger fragment pairs."""

    def __init__(self, settings: PostgrestSettings):
        self.settings = settings

    def generate(
        self,
        table: str,
        types: list[TriggerType],
        columns: list[Column] | None = None,
        schema: str | None = None,
    ) -> GeneratedArtifact:
        schema = schema or self.settings.schema
        columns = columns or []
        artifact = GeneratedArtifact(
            kind="triggers", title=f"Triggers for {qualified(schema, table)}"
        )
        needs_utils = False
        for trigger_type in resolve_trigger_types(types):
            if trigger_type in (TriggerType.AUDIT, TriggerType.SECURITY) and not needs_utils:
                artifact.fragments.append(
                    fragment("Schema for audit and security logs", "CREATE SCHEMA IF NOT EXISTS utils")
                )
                needs_utils = True
            artifact.fragments.extend(self._render(trigger_type, table, schema, columns))
        return artifact

    # ------------------------------------------------------------------

    def _render(
        self, trigger_type: TriggerType, table: str, schema: str, columns: list[Column]
    ) -> list[SQLFragment]:
        fn_name = qualified(schema, function_name_for(trigger_type, table))
        fragments: list[SQLFragment] = []

        if trigger_type == TriggerType.TIMESTAMP:
            description = f"Keep {table}.updated_at current on every UPDATE"
            body = "    NEW.updated_at = NOW();\n    RETURN NEW;"
            declare = ""
        elif trigger_type == TriggerType.TIMESTAMP_FULL:
            description = f"Manage {table}.created_at and updated_at automatically"
            body = (
                "    IF TG_OP = 'INSERT' THEN\n"
                "        NEW.created_at = COALESCE(NEW.created_at, NOW());\n"
                "    ELSE\n"
                "        NEW.created_at = OLD.created_at;\n"
                "    END IF;\n"
                "    NEW.updated_at = NOW();\n"
                "    RETURN NEW;"
            )
            declare = ""
        elif trigger_type == TriggerType.AUDIT:
            fragments.extend(self._audit_log_table())
            description = f"Record every change to {table} in utils.audit_log"
            body = (
                "    IF TG_OP = 'DELETE' THEN\n"
                "        INSERT INTO utils.audit_log (table_name, operation, user_id, old_data, new_data)\n"
                "        VALUES (TG_TABLE_NAME, TG_OP, auth.current_user_id(), to_jsonb(OLD), NULL);\n"
                "        RETURN OLD;\n"
                "    ELSIF TG_OP = 'UPDATE' THEN\n"
                "        INSERT INTO utils.audit_log (table_name, operation, user_id, old_data, new_data)\n"
                "        VALUES (TG_TABLE_NAME, TG_OP, auth.current_user_id(), to_jsonb(OLD), to_jsonb(NEW));\n"
                "        RETURN NEW;\n"
                "    END IF;\n"
                "    INSERT INTO utils.audit_log (table_name, operation, user_id, old_data, new_data)\n"
                "    VALUES (TG_TABLE_NAME, TG_OP, auth.current_user_id(), NULL, to_jsonb(NEW));\n"
                "    RETURN NEW;"
            )
            declare = ""
        elif trigger_type == TriggerType.VALIDATION:
            description = f"Validate {table} field formats before write"
            body = self._validation_body(columns)
            declare = ""
        elif trigger_type == TriggerType.SECURITY:
            fragments.extend(self._security_log_table())
            description = f"Log every change to {table} in utils.security_log"
            body = (
                "    risk := CASE TG_OP WHEN 'DELETE' THEN 'high' WHEN 'UPDATE' THEN 'medium' ELSE 'low' END;\n"
                "    INSERT INTO utils.security_log (table_name, operation, user_id, user_role, risk_level, details)\n"
                "    VALUES (\n"
                "        TG_TABLE_NAME, TG_OP, auth.current_user_id(), auth.current_user_role(), risk,\n"
                "        jsonb_build_object('old', to_jsonb(OLD), 'new', to_jsonb(NEW))\n"
                "    );\n"
                "    IF TG_OP = 'DELETE' THEN\n"
                "        RETURN OLD;\n"
                "    END IF;\n"
                "    RETURN NEW;"
            )
            declare = "DECLARE\n    risk TEXT;\n"
        elif trigger_type == TriggerType.SOFT_DELETE:
            pk = next((c.name for c in columns if c.is_primary_key), "id")
            description = f"Turn DELETE on {table} into setting deleted_at"
            body = (
                f"    UPDATE {qualified(schema, table)}\n"
                "    SET deleted_at = NOW()\n"
                f"    WHERE {pk} = OLD.{pk} AND deleted_at IS NULL;\n"
                "    RETURN NULL;"
            )
            declare = ""
        else:
            description = f"Custom trigger logic for {table}"
            body = "    -- Add trigger logic here\n    RETURN NEW;"
            declare = ""

        security = " SECURITY DEFINER" if trigger_type in (TriggerType.AUDIT, TriggerType.SECURITY) else ""
        fragments.append(
            fragment(
                f"Trigger function: {description}",
                f"CREATE OR REPLACE FUNCTION {fn_name}() RETURNS TRIGGER AS $$\n"
                f"{declare}BEGIN\n{body}\nEND;\n$$ LANGUAGE plpgsql{security}",
                key=IdentityKey(ObjectKind.FUNCTION, fn_name),
            )
        )

        trigger = trigger_name_for(trigger_type, table)
        _fn, _trigger, timing = TRIGGER_LAYOUT[trigger_type]
        target = qualified(schema, table)
        fragments.append(
            fragment(
                f"Recreate trigger {trigger}",
                f"DROP TRIGGER IF EXISTS {trigger} ON {target}",
                key=IdentityKey(ObjectKind.TRIGGER, trigger),
                attached=True,
            )
        )
        fragments.append(
            fragment(
                f"Trigger: {description}",
                f"CREATE TRIGGER {trigger}\n"
                f"    {timing} ON {target}\n"
                f"    FOR EACH ROW EXECUTE FUNCTION {fn_name}()",
                key=IdentityKey(ObjectKind.TRIGGER, trigger),
            )
        )
        return fragments

    def _validation_body(self, columns: list[Column]) -> str:
        checks = []
        for col in columns:
            name = col.name.lower()
            if "email" in name:
                checks.append(
                    f"    IF NEW.{col.name} IS NOT NULL AND NEW.{col.name} !~* {sql_literal(EMAIL_PATTERN)} THEN\n"
                    f"        RAISE EXCEPTION 'Invalid email format for {col.name}';\n"
                    "    END IF;"
                )
            elif "phone" in name:
                checks.append(
                    f"    IF NEW.{col.name} IS NOT NULL AND NEW.{col.name} !~ {sql_literal(PHONE_PATTERN)} THEN\n"
                    f"        RAISE EXCEPTION 'Invalid phone format for {col.name}';\n"
                    "    END IF;"
                )
            elif any(hint in name for hint in NON_NEGATIVE_HINTS):
                checks.append(
                    f"    IF NEW.{col.name} IS NOT NULL AND NEW.{col.name} < 0 THEN\n"
                    f"        RAISE EXCEPTION '{col.name} cannot be negative';\n"
                    "    END IF;"
                )
            elif "url" in name or "website" in name:
                checks.append(
                    f"    IF NEW.{col.name} IS NOT NULL AND NEW.{col.name} !~* {sql_literal(URL_PATTERN)} THEN\n"
                    f"        RAISE EXCEPTION 'Invalid URL for {col.name}';\n"
                    "    END IF;"
                )
        if not checks:
            checks.append("    -- No validatable columns detected; add checks here")
        return "\n".join(checks) + "\n    RETURN NEW;"

    def _audit_log_table(self) -> list[SQLFragment]:
        return [
            fragment(
                "Shared audit log for all audited tables",
                "CREATE TABLE IF NOT EXISTS utils.audit_log (\n"
                "    id BIGSERIAL PRIMARY KEY,\n"
                "    table_name TEXT NOT NULL,\n"
                "    operation TEXT NOT NULL,\n"
                "    user_id UUID,\n"
                "    old_data JSONB,\n"
                "    new_data JSONB,\n"
                "    changed_at TIMESTAMPTZ NOT NULL DEFAULT NOW()\n"
                ")",
                key=IdentityKey(ObjectKind.TABLE, "utils.audit_log"),
            ),
            fragment(
                "Audit log lookups by table and operation",
                "CREATE INDEX IF NOT EXISTS idx_audit_log_table_operation\n"
                "    ON utils.audit_log (table_name, operation, changed_at)",
                key=IdentityKey(ObjectKind.INDEX, "idx_audit_log_table_operation"),
            ),
        ]

    def _security_log_table(self) -> list[SQLFragment]:
        return [
            fragment(
                "Shared security log for monitored tables",
                "CREATE TABLE IF NOT EXISTS utils.security_log (\n"
                "    id BIGSERIAL PRIMARY KEY,\n"
                "    table_name TEXT NOT NULL,\n"
                "    operation TEXT NOT NULL,\n"
                "    user_id UUID,\n"
                "    user_role TEXT,\n"
                "    risk_level TEXT NOT NULL,\n"
                "    details JSONB,\n"
                "    logged_at TIMESTAMPTZ NOT NULL DEFAULT NOW()\n"
                ")",
                key=IdentityKey(ObjectKind.TABLE, "utils.security_log"),
            ),
            fragment(
                "Security log lookups by table and risk level",
                "CREATE INDEX IF NOT EXISTS idx_security_log_table_risk\n"
                "    ON utils.security_log (table_name, risk_level, logged_at)",
                key=IdentityKey(ObjectKind.INDEX, "idx_security_log_table_risk"),
            ),
        ]
