from flask import current_app, jsonify, request, session
from flask_login import login_user, logout_user

from tagshelf.auth import auth_bp
from tagshelf.errors import RateLimited, ValidationError
from tagshelf.models import Owner
from tagshelf.services.security import (
    CSRF_SESSION_KEY,
    check_owner_password,
    client_ip,
    csrf_token,
    login_rate_limited,
    owner_required,
    record_login_attempt,
    viewer_is_owner,
)


@auth_bp.route("", methods=["GET"])
def status():
    return jsonify({"authenticated": viewer_is_owner(), "csrf_token": csrf_token()})


@auth_bp.route("/login", methods=["POST"])
def login():
    payload = request.get_json(silent=True) or request.form
    password = payload.get("password") or ""
    ip_address = client_ip()

    if login_rate_limited(ip_address):
        record_login_attempt(ip_address, success=False)
        current_app.logger.warning("Login rate limit hit for %s", ip_address)
        raise RateLimited("Too many login attempts. Please try again later.")

    if not password:
        raise ValidationError("Password is required")

    if not check_owner_password(password):
        record_login_attempt(ip_address, success=False)
        current_app.logger.warning("Rejected login from %s", ip_address)
        return jsonify({"error": "Invalid password"}), 401

    session.clear()
    login_user(Owner())
    record_login_attempt(ip_address, success=True)
    return jsonify(
        {"success": True, "message": "Login successful", "csrf_token": csrf_token()}
    )


@auth_bp.route("/logout", methods=["POST"])
@owner_required()
def logout():
    logout_user()
    session.pop(CSRF_SESSION_KEY, None)
    return jsonify({"success": True, "message": "Logged out"})
