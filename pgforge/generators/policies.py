"""RLS policy generation for the four access patterns."""

from pgforge.config_runtime import PostgrestSettings
from pgforge.errors import GenerationError
from pgforge.models import (
    GeneratedArtifact,
    IdentityKey,
    ObjectKind,
    PatternDecision,
    PatternKind,
    SQLFragment,
)

from .base import fragment, qualified


def policy_key(name: str) -> IdentityKey:
    return IdentityKey(ObjectKind.POLICY, name)


class PolicyGenerator:
    """Render an access-pattern decision as ``rls.sql`` fragments.

    Policies rely on the ``auth.current_user_id()`` and
    ``auth.current_user_role()`` helpers produced by the auth function set.
    """

    def __init__(self, settings: PostgrestSettings):
        self.settings = settings

    @property
    def admin_check(self) -> str:
        return f"auth.current_user_role() = '{self.settings.admin_role}'"

    def rls_toggle(self, table: str, enable: bool = True, schema: str | None = None) -> SQLFragment:
        target = qualified(schema or self.settings.schema, table)
        action = "ENABLE" if enable else "DISABLE"
        return fragment(
            f"Row level security {'enabled' if enable else 'disabled'} for {table}",
            f"ALTER TABLE {target} {action} ROW LEVEL SECURITY",
            key=IdentityKey(ObjectKind.RLS, target),
        )

    def rls_toggle_artifact(self, table: str, enable: bool, schema: str | None = None) -> GeneratedArtifact:
        return GeneratedArtifact(
            kind="rls",
            fragments=[self.rls_toggle(table, enable, schema)],
            title=f"Row level security for {qualified(schema or self.settings.schema, table)}",
        )

    def generate(self, table: str, decision: PatternDecision, schema: str | None = None) -> GeneratedArtifact:
        schema = schema or self.settings.schema
        target = qualified(schema, table)
        fragments = [self.rls_toggle(table, True, schema)]

        if decision.requires_manual_condition:
            fragments.extend(self._manual_condition_policies(table, target, decision))
        elif decision.kind == PatternKind.USER_SPECIFIC:
            fragments.extend(self._user_specific_policies(table, target, decision.owner_column))
        elif decision.kind == PatternKind.PUBLIC_READ:
            fragments.extend(self._public_read_policies(table, target, decision.condition))
        elif decision.kind == PatternKind.ADMIN_ONLY:
            fragments.extend(self._admin_only_policies(table, target))
        elif decision.kind == PatternKind.CUSTOM:
            fragments.extend(self._custom_policies(table, target, decision.condition))
        else:
            raise GenerationError(f"Unsupported access pattern: {decision.kind}")

        fragments.extend(self._grants(target, decision))
        return GeneratedArtifact(
            kind="rls",
            fragments=fragments,
            title=f"RLS policies for {target} ({decision.kind.value}: {decision.reason})",
        )

    # ------------------------------------------------------------------

    def _admin_all(self, table: str, target: str) -> SQLFragment:
        name = f"{table}_admin_all"
        return fragment(
            f"Admin override: admins can manage all {table}",
            f'CREATE POLICY "{name}" ON {target}\n'
            "    FOR ALL\n"
            f"    USING ({self.admin_check})\n"
            f"    WITH CHECK ({self.admin_check})",
            key=policy_key(name),
        )

    def _user_specific_policies(self, table: str, target: str, owner: str) -> list[SQLFragment]:
        owns = f"{owner} = auth.current_user_id()"
        return [
            fragment(
                f"SELECT policy: users can view their own {table}",
                f'CREATE POLICY "{table}_select_own" ON {target}\n'
                "    FOR SELECT\n"
                f"    USING ({owns})",
                key=policy_key(f"{table}_select_own"),
            ),
            fragment(
                f"INSERT policy: users can insert their own {table}",
                f'CREATE POLICY "{table}_insert_own" ON {target}\n'
                "    FOR INSERT\n"
                f"    WITH CHECK ({owns})",
                key=policy_key(f"{table}_insert_own"),
            ),
            fragment(
                f"UPDATE policy: users can update their own {table}",
                f'CREATE POLICY "{table}_update_own" ON {target}\n'
                "    FOR UPDATE\n"
                f"    USING ({owns})\n"
                f"    WITH CHECK ({owns})",
                key=policy_key(f"{table}_update_own"),
            ),
            fragment(
                f"DELETE policy: users can delete their own {table}",
                f'CREATE POLICY "{table}_delete_own" ON {target}\n'
                "    FOR DELETE\n"
                f"    USING ({owns})",
                key=policy_key(f"{table}_delete_own"),
            ),
            self._admin_all(table, target),
        ]

    def _public_read_policies(self, table: str, target: str, condition: str | None) -> list[SQLFragment]:
        authenticated = "auth.current_user_id() IS NOT NULL"
        where = f" where {condition}" if condition else ""
        return [
            fragment(
                f"SELECT policy: public read access{where}",
                f'CREATE POLICY "{table}_public_select" ON {target}\n'
                "    FOR SELECT\n"
                f"    USING ({condition or 'true'})",
                key=policy_key(f"{table}_public_select"),
            ),
            fragment(
                "INSERT policy: only authenticated users can insert",
                f'CREATE POLICY "{table}_authenticated_insert" ON {target}\n'
                "    FOR INSERT\n"
                f"    WITH CHECK ({authenticated})",
                key=policy_key(f"{table}_authenticated_insert"),
            ),
            fragment(
                "UPDATE policy: only authenticated users can update",
                f'CREATE POLICY "{table}_authenticated_update" ON {target}\n'
                "    FOR UPDATE\n"
                f"    USING ({authenticated})\n"
                f"    WITH CHECK ({authenticated})",
                key=policy_key(f"{table}_authenticated_update"),
            ),
            fragment(
                "DELETE policy: only authenticated users can delete",
                f'CREATE POLICY "{table}_authenticated_delete" ON {target}\n'
                "    FOR DELETE\n"
                f"    USING ({authenticated})",
                key=policy_key(f"{table}_authenticated_delete"),
            ),
            self._admin_all(table, target),
        ]

    def _admin_only_policies(self, table: str, target: str) -> list[SQLFragment]:
        name = f"{table}_admin_only"
        return [
            fragment(
                "All operations policy: admin-only access",
                f'CREATE POLICY "{name}" ON {target}\n'
                "    FOR ALL\n"
                f"    USING ({self.admin_check})\n"
                f"    WITH CHECK ({self.admin_check})",
                key=policy_key(name),
            )
        ]

    def _custom_policies(self, table: str, target: str, condition: str) -> list[SQLFragment]:
        name = f"{table}_custom_access"
        return [
            fragment(
                f"Custom policy: rows visible where {condition}",
                f'CREATE POLICY "{name}" ON {target}\n'
                "    FOR ALL\n"
                f"    USING ({condition})\n"
                f"    WITH CHECK ({condition})",
                key=policy_key(name),
            ),
            self._admin_all(table, target),
        ]

    def _manual_condition_policies(
        self, table: str, target: str, decision: PatternDecision
    ) -> list[SQLFragment]:
        """Deny-by-default policy for decisions with nothing to filter on."""
        name = f"{table}_custom_access"
        why = (
            "no ownership column was found"
            if decision.kind == PatternKind.USER_SPECIFIC
            else "no condition was supplied"
        )
        return [
            fragment(
                [
                    f"Custom policy: manual condition required ({why})",
                    "Replace both false expressions with a row filter before granting access",
                ],
                f'CREATE POLICY "{name}" ON {target}\n'
                "    FOR ALL\n"
                "    USING (false)\n"
                "    WITH CHECK (false)",
                key=policy_key(name),
            ),
            self._admin_all(table, target),
        ]

    def _grants(self, target: str, decision: PatternDecision) -> list[SQLFragment]:
        grants = [
            fragment(
                "Table privileges for authenticated requests",
                f"GRANT ALL ON {target} TO {self.settings.authenticated_role}",
            )
        ]
        if decision.kind in (PatternKind.USER_SPECIFIC, PatternKind.PUBLIC_READ):
            grants.append(
                fragment(
                    "Read privilege for anonymous requests (rows still filtered by RLS)",
                    f"GRANT SELECT ON {target} TO {self.settings.anon_role}",
                )
            )
        return grants
