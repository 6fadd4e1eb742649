import hmac
import secrets
from datetime import timedelta
from functools import wraps

from flask import current_app, request, session
from flask_login import current_user
from werkzeug.security import check_password_hash

from tagshelf.errors import Forbidden, Unauthorized
from tagshelf.extensions import db
from tagshelf.models import LoginAttempt, utcnow

CSRF_SESSION_KEY = "csrf_token"
CSRF_HEADER = "X-CSRF-Token"
ATTEMPT_RETENTION = timedelta(hours=24)


def viewer_is_owner() -> bool:
    return bool(current_user.is_authenticated)


def csrf_token() -> str:
    token = session.get(CSRF_SESSION_KEY)
    if not token:
        token = secrets.token_hex(32)
        session[CSRF_SESSION_KEY] = token
    return token


def _submitted_csrf_token() -> str:
    token = request.headers.get(CSRF_HEADER)
    if token:
        return token
    payload = request.get_json(silent=True)
    if isinstance(payload, dict) and payload.get(CSRF_SESSION_KEY):
        return str(payload[CSRF_SESSION_KEY])
    return request.form.get(CSRF_SESSION_KEY) or request.args.get(CSRF_SESSION_KEY) or ""


def csrf_valid() -> bool:
    expected = session.get(CSRF_SESSION_KEY)
    submitted = _submitted_csrf_token()
    if not expected or not submitted:
        return False
    return hmac.compare_digest(expected, submitted)


def owner_required(csrf=True):
    def decorator(func):
        @wraps(func)
        def wrapped(*args, **kwargs):
            if not viewer_is_owner():
                raise Unauthorized("Unauthorized")
            if csrf and not csrf_valid():
                raise Forbidden("Invalid security token")
            return func(*args, **kwargs)

        return wrapped

    return decorator


def client_ip() -> str:
    cloudflare = request.headers.get("CF-Connecting-IP")
    if cloudflare:
        return cloudflare.strip()
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.remote_addr or "unknown"


def login_rate_limited(ip_address: str) -> bool:
    window = timedelta(seconds=current_app.config["LOGIN_WINDOW_SECONDS"])
    failures = LoginAttempt.query.filter(
        LoginAttempt.ip_address == ip_address,
        LoginAttempt.success.is_(False),
        LoginAttempt.attempt_time > utcnow() - window,
    ).count()
    return failures >= current_app.config["LOGIN_MAX_ATTEMPTS"]


def record_login_attempt(ip_address: str, success: bool) -> None:
    db.session.add(LoginAttempt(ip_address=ip_address, success=success))
    LoginAttempt.query.filter(
        LoginAttempt.attempt_time < utcnow() - ATTEMPT_RETENTION
    ).delete(synchronize_session=False)
    db.session.commit()


def check_owner_password(password: str) -> bool:
    password_hash = current_app.config.get("OWNER_PASSWORD_HASH")
    if not password_hash or not password:
        return False
    return check_password_hash(password_hash, password)
