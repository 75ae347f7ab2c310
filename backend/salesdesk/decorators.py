# Overview: Request and role decorators for API routes.

from functools import wraps

from flask import g, request

from .errors import ForbiddenError, UnauthorizedError
from .services import auth_service, token_service


def _bearer_token() -> str:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        raise UnauthorizedError("Authentication required")
    token = auth_header.split(" ", 1)[1].strip()
    if not token:
        raise UnauthorizedError("Authentication required")
    return token


def require_auth(f):
    """
    Require a valid access token.

    Sets g.current_user to the active User named by the token. Expired or
    tampered tokens raise PyJWT errors that the central handler maps to 401.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        claims = token_service.decode_access_token(_bearer_token())
        try:
            user_id = int(claims["sub"])
        except (KeyError, TypeError, ValueError):
            raise UnauthorizedError("Invalid token")

        g.current_user = auth_service.get_active_user(user_id)
        g.token_claims = claims
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """Require the authenticated user to hold one of `roles` (use after @require_auth)."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user = getattr(g, "current_user", None)
            if user is None:
                raise UnauthorizedError("Authentication required")
            if user.role not in roles:
                raise ForbiddenError(
                    "Insufficient permissions",
                    {"required_roles": list(roles)},
                )
            return f(*args, **kwargs)

        return decorated_function
    return decorator


require_admin = require_role("admin")
