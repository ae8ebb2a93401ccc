# Overview: Lookups over the permission catalog.

from .definitions import PERMISSION_DEFINITIONS

_FIELDS = ("code", "name", "description", "category")
_BY_CODE = {perm[0]: perm for perm in PERMISSION_DEFINITIONS}


def get_permission_definition(code):
    """Catalog entry for code as a dict (for /me), or None when unknown."""
    perm = _BY_CODE.get(code)
    return dict(zip(_FIELDS, perm)) if perm else None


def validate_permission_code(code):
    return code in _BY_CODE
