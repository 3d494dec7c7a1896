"""PostgREST role setup (``sql/roles.sql``)."""

from pgforge.config_runtime import PostgrestSettings
from pgforge.models import GeneratedArtifact, IdentityKey, ObjectKind, SQLFragment

from .base import fragment


class RoleGenerator:
    """Idempotent role creation plus the grants PostgREST needs to switch roles."""

    def __init__(self, settings: PostgrestSettings):
        self.settings = settings

    def create_role(self, role: str, description: str, options: str = "NOLOGIN") -> SQLFragment:
        return fragment(
            f"Role: {description}",
            "DO $$\n"
            "BEGIN\n"
            f"    IF NOT EXISTS (SELECT 1 FROM pg_roles WHERE rolname = '{role}') THEN\n"
            f"        CREATE ROLE {role} {options};\n"
            "    END IF;\n"
            "END\n"
            "$$",
            key=IdentityKey(ObjectKind.ROLE, role),
        )

    def generate(self, include_authenticator: bool = True, schema: str | None = None) -> GeneratedArtifact:
        s = self.settings
        schema = schema or s.schema
        api_roles = (s.anon_role, s.authenticated_role, s.admin_role)
        fragments = [
            self.create_role(s.anon_role, "anonymous requests"),
            self.create_role(s.authenticated_role, "requests carrying a valid JWT"),
            self.create_role(s.admin_role, "administrators"),
        ]
        if include_authenticator:
            fragments.append(
                self.create_role(
                    s.authenticator_role,
                    "PostgREST connection role (set its password separately)",
                    "LOGIN NOINHERIT",
                )
            )
            for role in api_roles:
                fragments.append(
                    fragment(
                        f"Allow PostgREST to switch to {role}",
                        f"GRANT {role} TO {s.authenticator_role}",
                    )
                )
        fragments.append(fragment("API schema", f"CREATE SCHEMA IF NOT EXISTS {schema}"))
        fragments.append(
            fragment(
                "Schema access for API roles",
                f"GRANT USAGE ON SCHEMA {schema} TO {', '.join(api_roles)}",
            )
        )
        fragments.append(
            fragment(
                "Admins inherit authenticated privileges",
                f"GRANT {s.authenticated_role} TO {s.admin_role}",
            )
        )
        return GeneratedArtifact(kind="roles", fragments=fragments, title="PostgREST roles")
