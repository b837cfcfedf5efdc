"""
Authentication Routes

Provides:
- POST /auth/login   (JSON: email, password)
- POST /auth/logout

Rules:
- Only active users may log in.
- Credentials validated via password hash.
"""

from flask import Blueprint, jsonify
from flask_login import login_user, logout_user, login_required, current_user

from ...models import User
from ..responses import bad_request, json_body, parse_text


auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


@auth_bp.route("/login", methods=["POST"])
def login():
    """Authenticate a staff user and open a session."""
    if current_user.is_authenticated:
        return jsonify({"id": current_user.id, "email": current_user.email})

    data = json_body()
    email = parse_text(data.get("email")).lower()
    password = data.get("password")
    if not isinstance(password, str):
        password = ""
    if not email or not password:
        return bad_request("E-mail and password are required.")

    user = User.query.filter_by(email=email).first()
    if not user or not user.check_password(password):
        return jsonify({"error": {"code": "unauthorized", "message": "Wrong e-mail or password."}}), 401

    if not user.is_active:
        return jsonify({"error": {"code": "unauthorized", "message": "The account is inactive."}}), 401

    login_user(user)
    return jsonify({"id": user.id, "email": user.email, "role": user.role})


@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    logout_user()
    return jsonify({"ok": True})
