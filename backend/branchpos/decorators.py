# Overview: Request and role decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .errors import ValidationError
from .services import session_service, permission_service


def _is_authenticated() -> bool:
    return hasattr(g, 'session_context')


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1]


def require_auth(f):
    """
    Require a valid session token.

    Sets the following Flask g attributes:
    - g.session_context: The full SessionContext object
    - g.current_user: The credential-store record (BranchUser or HeadOfficeUser)
    - g.branch_id: The session's branch (None for head office admins)
    - g.role: The role captured when the session was created

    SECURITY: Returns 401 if:
    - No Authorization header
    - Invalid, expired or revoked token
    - User or branch deactivated in the credential store
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _bearer_token()
        if not token:
            return jsonify({"error": "Authentication required", "code": "Unauthorized"}), 401

        context = session_service.validate_session(token)
        if not context:
            return jsonify({"error": "Invalid or expired token", "code": "Unauthorized"}), 401

        g.session_context = context
        g.current_user = context.user
        g.branch_id = context.branch_id
        g.role = context.role

        return f(*args, **kwargs)

    return decorated_function


def require_role(required_role: str):
    """
    Require the session role to be at least ``required_role``.

    Branch scoping is checked per request with ``resolve_branch_id`` since
    the target branch usually comes from the request itself.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify({"error": "Authentication required", "code": "Unauthorized"}), 401

            decision = permission_service.authorize(g.session_context, required_role)
            if not decision:
                return jsonify({
                    "error": "Permission denied",
                    "code": "Forbidden",
                    "details": {"reason": decision.reason, "required_role": required_role},
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator


def resolve_branch_id(required_role: str, requested=None) -> int:
    """
    Branch a request acts on.

    Branch sessions act on their own branch; asking for another one raises
    AuthorizationError. Head office admins must name the branch
    (``branch_id`` in the query string or JSON body).
    """
    if requested is None:
        requested = request.args.get("branch_id")
    if requested is None and request.is_json:
        requested = (request.get_json(silent=True) or {}).get("branch_id")

    if requested is not None:
        try:
            requested = int(requested)
        except (TypeError, ValueError):
            raise ValidationError("branch_id must be an integer", details={"field": "branch_id"})

    context = g.session_context
    branch_id = requested if requested is not None else context.branch_id
    if branch_id is None:
        raise ValidationError("branch_id is required", details={"field": "branch_id"})

    permission_service.require(context, required_role, branch_id)
    return branch_id
