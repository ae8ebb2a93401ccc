# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

"""
Authentication API routes

- POST /api/auth/login   -> bearer token (hashed at rest)
- POST /api/auth/logout  -> revokes the token
- GET  /api/auth/me      -> user, branch context and permissions
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import current_caller, require_auth
from ..permissions import get_permission_definition
from ..services import auth_service, permission_service, session_service


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    try:
        data = request.get_json(silent=True) or {}
        username = data.get("username")
        password = data.get("password")

        if not all([username, password]):
            return jsonify({"error": "username and password required"}), 400

        user = auth_service.authenticate(username, password)
        if not user:
            current_app.logger.info("Failed login for %r from %s", username, request.remote_addr)
            return jsonify({"error": "Invalid credentials"}), 401

        session, token = session_service.create_session(
            user,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )
        caller = permission_service.build_context(user, session.branch_id)

        return jsonify({
            "user": user.to_dict(),
            "permissions": sorted(caller.permissions),
            "token": token,
            "session": session.to_dict(),
            "branch_id": session.branch_id,
            "message": "Login successful",
        }), 200

    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
def logout_route():
    try:
        auth_header = request.headers.get("Authorization")
        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authorization header required"}), 401

        token = auth_header.split(" ", 1)[1]
        if not session_service.revoke_session(token, reason="User logout"):
            return jsonify({"error": "Invalid or expired token"}), 401

        return jsonify({"message": "Logout successful"}), 200

    except Exception:
        current_app.logger.exception("Failed to logout user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/me")
@require_auth
def me_route():
    caller = current_caller()
    return jsonify({
        "user": g.current_user.to_dict(),
        "branch_id": caller.branch_id,
        "permissions": sorted(caller.permissions),
        "permission_details": [
            get_permission_definition(code) for code in sorted(caller.permissions)
        ],
    }), 200
