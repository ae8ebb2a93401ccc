# Overview: Permission catalog and role defaults for the order engine.

from .definitions import PERMISSION_DEFINITIONS
from .roles import DEFAULT_ROLE_PERMISSIONS, VALID_ROLES
from .helpers import get_permission_definition, validate_permission_code

__all__ = [
    "PERMISSION_DEFINITIONS",
    "DEFAULT_ROLE_PERMISSIONS",
    "VALID_ROLES",
    "get_permission_definition",
    "validate_permission_code",
]
