# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

"""
Authentication API routes

SECURITY FEATURES:
- Branch login authenticates against the head office credential store only
- One response for every credential failure (no username enumeration)
- 503 when the credential store is unreachable (no fallback to branch data)
- Session management with token-based auth
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..errors import BranchPosError, error_response
from ..services import auth_service
from ..services import session_service
from ..decorators import require_auth


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _login_response(token, user, session):
    return jsonify({
        "token": token,
        "user": user.to_dict(),
        "session": session.to_dict(),
        "branch_id": session.branch_id,
        "role": session.role,
        "message": "Login successful",
    }), 200


@auth_bp.post("/branch/login")
def branch_login_route():
    """
    Authenticate a branch user.

    Body: {branch_code, username, password}
    """
    try:
        data = request.get_json(silent=True) or {}
        token, user, session = auth_service.login(
            data.get("branch_code"),
            data.get("username"),
            data.get("password"),
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )
        return _login_response(token, user, session)

    except BranchPosError as exc:
        return error_response(exc)
    except Exception:
        current_app.logger.exception("Failed to login branch user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/login")
def head_office_login_route():
    """Authenticate a head office administrator. Body: {username, password}"""
    try:
        data = request.get_json(silent=True) or {}
        token, user, session = auth_service.login_head_office(
            data.get("username"),
            data.get("password"),
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )
        return _login_response(token, user, session)

    except BranchPosError as exc:
        return error_response(exc)
    except Exception:
        current_app.logger.exception("Failed to login head office user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
@require_auth
def logout_route():
    """Revoke the current session token."""
    token = request.headers.get("Authorization").split(" ", 1)[1]
    session_service.revoke_session(token, reason="User logout")
    return jsonify({"message": "Logout successful"}), 200


@auth_bp.post("/validate")
def validate_route():
    """
    Check whether a token is still valid.

    Body: {token} or Authorization: Bearer header.
    """
    data = request.get_json(silent=True) or {}
    token = data.get("token")
    if not token:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header.split(" ", 1)[1]

    if not token:
        return jsonify({"valid": False, "error": "token required"}), 400

    context = session_service.validate_session(token)
    if not context:
        return jsonify({"valid": False}), 401

    return jsonify({
        "valid": True,
        "user": context.user.to_dict(),
        "session": context.session.to_dict(),
        "branch_id": context.branch_id,
        "role": context.role,
    }), 200


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({
        "user": g.current_user.to_dict(),
        "branch_id": g.branch_id,
        "role": g.role,
    }), 200
