"""Function type detection from a function's name."""

from pgforge.models import FunctionType

AUTH_KEYWORDS = ("login", "register", "authenticate", "verify", "hash_password", "check_password")
CRUD_PREFIXES = ("create_", "update_", "delete_", "get_", "find_", "list_")
UTILITY_KEYWORDS = ("validate", "format", "calculate", "convert", "generate", "send_")


def detect_function_type(name: str) -> FunctionType:
    lowered = name.lower()
    if any(keyword in lowered for keyword in AUTH_KEYWORDS):
        return FunctionType.AUTH
    if lowered.startswith(CRUD_PREFIXES):
        return FunctionType.CRUD
    if any(keyword in lowered for keyword in UTILITY_KEYWORDS):
        return FunctionType.UTILITY
    return FunctionType.CUSTOM
