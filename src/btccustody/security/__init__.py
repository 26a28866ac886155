from btccustody.security.access import AuthorizedActor, Role, RoleStore, StaticRoleStore
from btccustody.security.redaction import redact_data, sanitize_mapping, sanitize_text

__all__ = [
    "AuthorizedActor",
    "Role",
    "RoleStore",
    "StaticRoleStore",
    "redact_data",
    "sanitize_mapping",
    "sanitize_text",
]
