# backend/salesdesk/routes/auth.py
"""
Authentication API routes

Access token in the response body; refresh token in an http-only cookie.
Failures raise typed errors handled centrally (401 also clears the cookie).
"""

from flask import Blueprint, current_app, g, request

from ..decorators import require_admin, require_auth
from ..errors import ValidationError
from ..services import auth_service, token_service

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    return data


def _set_refresh_cookie(response, token: str):
    cfg = current_app.config
    response.set_cookie(
        cfg["REFRESH_COOKIE_NAME"],
        token,
        max_age=cfg["REFRESH_TOKEN_EXPIRES_DAYS"] * 24 * 60 * 60,
        httponly=True,
        secure=cfg.get("APP_ENV") == "production",
        samesite="Strict",
    )
    return response


def _clear_refresh_cookie(response):
    response.delete_cookie(current_app.config["REFRESH_COOKIE_NAME"])
    return response


def _token_response(user, tokens, message: str, status: int = 200):
    body = {
        "success": True,
        "message": message,
        "data": {
            "user": user.to_dict(),
            "access_token": tokens.access_token,
            "token_type": "Bearer",
            "expires_in": tokens.expires_in,
        },
    }
    response = current_app.make_response((body, status))
    return _set_refresh_cookie(response, tokens.refresh_token)


def _require_admin_caller() -> None:
    """Only an authenticated admin may create another admin."""
    @require_auth
    @require_admin
    def _check():
        return None
    _check()


@auth_bp.post("/register")
def register_route():
    """Create an account and log it in."""
    data = _json_body()
    missing = [k for k in ("email", "password", "first_name", "last_name") if not data.get(k)]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    role = data.get("role") or "seller"
    if role == "admin":
        _require_admin_caller()

    user = auth_service.create_user(
        email=data["email"],
        password=data["password"],
        first_name=data["first_name"],
        last_name=data["last_name"],
        role=role,
    )
    tokens = token_service.issue_tokens(user)
    return _token_response(user, tokens, "User registered", 201)


@auth_bp.post("/login")
def login_route():
    data = _json_body()
    email = data.get("email")
    password = data.get("password")
    if not email or not password:
        raise ValidationError("email and password required")

    user, tokens = auth_service.login(email, password)
    return _token_response(user, tokens, "Login successful")


@auth_bp.post("/refresh")
def refresh_route():
    """Exchange the refresh cookie for a new access token."""
    token = request.cookies.get(current_app.config["REFRESH_COOKIE_NAME"])
    user = token_service.user_for_refresh_token(token)
    return {
        "success": True,
        "data": {
            "access_token": token_service.create_access_token(user),
            "token_type": "Bearer",
            "expires_in": current_app.config["JWT_ACCESS_EXPIRES_MINUTES"] * 60,
        },
    }


@auth_bp.post("/logout")
def logout_route():
    token = request.cookies.get(current_app.config["REFRESH_COOKIE_NAME"])
    revoked = token_service.revoke_refresh_token(token)
    response = current_app.make_response({"success": True, "message": "Logged out", "data": {"revoked": revoked}})
    return _clear_refresh_cookie(response)


@auth_bp.get("/me")
@require_auth
def me_route():
    return {"success": True, "data": {"user": g.current_user.to_dict()}}


@auth_bp.post("/change-password")
@require_auth
def change_password_route():
    data = _json_body()
    current_password = data.get("current_password")
    new_password = data.get("new_password")
    if not current_password or not new_password:
        raise ValidationError("current_password and new_password required")

    auth_service.change_password(g.current_user, current_password, new_password)
    response = current_app.make_response({"success": True, "message": "Password changed, please log in again"})
    return _clear_refresh_cookie(response)


@auth_bp.get("/users")
@require_auth
@require_admin
def list_users_route():
    users = auth_service.list_users()
    return {"success": True, "data": {"users": [u.to_dict() for u in users], "count": len(users)}}
