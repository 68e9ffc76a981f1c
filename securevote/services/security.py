from functools import wraps

from flask import current_app, g, jsonify, request
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from werkzeug.security import check_password_hash, generate_password_hash

from securevote.extensions import db
from securevote.models import Admin


def hash_password(password):
    return generate_password_hash(password, method="pbkdf2:sha256")


def password_matches(password_hash, password):
    if not password_hash or not isinstance(password, str):
        return False
    return check_password_hash(password_hash, password)


def _admin_serializer():
    return URLSafeTimedSerializer(current_app.config["SECRET_KEY"])


def generate_admin_token(admin):
    return _admin_serializer().dumps(
        {"admin_id": admin.id, "role": admin.role}, salt="admin-auth"
    )


def verify_admin_token(token, max_age=None):
    if max_age is None:
        max_age = current_app.config["ADMIN_TOKEN_MAX_AGE"]
    try:
        return _admin_serializer().loads(token, salt="admin-auth", max_age=max_age)
    except (BadSignature, SignatureExpired):
        return None


def admin_required(*roles):
    """Require a valid admin bearer token, optionally restricted to ``roles``."""

    def decorator(view):
        @wraps(view)
        def wrapped(*args, **kwargs):
            header = request.headers.get("Authorization", "")
            if not header.startswith("Bearer "):
                return jsonify({"error": "Access denied. No token provided."}), 401

            payload = verify_admin_token(header.split(" ", 1)[1])
            if not payload:
                return jsonify({"error": "Invalid token"}), 401

            admin = db.session.get(Admin, payload.get("admin_id"))
            if admin is None or not admin.is_active:
                return jsonify({"error": "Invalid token"}), 401
            if roles and admin.role not in roles:
                current_app.logger.warning(
                    "Admin %s (%s) denied access to %s", admin.username, admin.role, request.path
                )
                return jsonify({"error": "Insufficient role"}), 403

            g.admin = admin
            return view(*args, **kwargs)

        return wrapped

    return decorator
