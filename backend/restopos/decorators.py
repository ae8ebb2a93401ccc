# Overview: Request and permission decorators for API routes.

from functools import wraps

from flask import current_app, g, jsonify, request

from .context import CallerContext
from .services import permission_service, session_service


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1]


def _establish_context(token: str) -> bool:
    context = session_service.validate_session(token)
    if not context:
        return False

    g.current_user = context.user
    g.branch_id = context.branch_id
    g.session_context = context
    g.caller = permission_service.build_context(context.user, context.branch_id)
    return True


def current_caller() -> CallerContext:
    """The CallerContext established for this request (guest if none)."""
    return getattr(g, "caller", None) or CallerContext.guest()


def require_auth(f):
    """
    Require a valid bearer session and establish the caller context.

    Sets on Flask g:
    - g.current_user: the authenticated User
    - g.branch_id: branch captured at login (None for owners)
    - g.session_context: the SessionContext
    - g.caller: the CallerContext passed into every service call
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _bearer_token()
        if not token:
            return jsonify({"error": "Authentication required"}), 401

        if not _establish_context(token):
            return jsonify({"error": "Invalid or expired token"}), 401

        return f(*args, **kwargs)

    return decorated_function


def optional_auth(f):
    """
    Authenticate when a bearer token is present, otherwise act as a guest.

    A token that is present but invalid is still rejected.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _bearer_token()
        if token is None:
            g.caller = CallerContext.guest()
        elif not _establish_context(token):
            return jsonify({"error": "Invalid or expired token"}), 401

        return f(*args, **kwargs)

    return decorated_function


def require_permission(permission_code: str):
    """Require a specific permission; must be stacked under @require_auth."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            caller = getattr(g, "caller", None)
            if caller is None or not caller.is_authenticated:
                return jsonify({"error": "Authentication required"}), 401

            if not caller.has(permission_code):
                current_app.logger.warning(
                    "Permission denied: user_id=%s permission=%s path=%s",
                    caller.user_id,
                    permission_code,
                    request.path,
                )
                return jsonify({
                    "error": "Permission denied",
                    "required_permission": permission_code,
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
