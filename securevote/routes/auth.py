from datetime import datetime

from flask import jsonify, request
from flask_login import current_user, login_required, login_user, logout_user
from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError

from securevote.extensions import db
from securevote.models import Voter
from securevote.models.voter import GENDERS
from securevote.routes.validation import PayloadError, date_field, text_field
from securevote.services.security import hash_password, password_matches

MIN_PASSWORD_LENGTH = 8


def serialize_voter(voter):
    return {
        "id": voter.id,
        "name": voter.name,
        "email": voter.email,
        "dob": voter.dob.isoformat() if voter.dob else None,
        "gender": voter.gender,
        "face_enrolled": bool(voter.face_data),
        "registered_at": voter.registered_at.isoformat() if voter.registered_at else None,
        "last_login": voter.last_login.isoformat() if voter.last_login else None,
    }


def register_auth_routes(app):
    @app.route("/api/auth/register", methods=["POST"])
    def register_voter():
        data = request.get_json(silent=True) or {}
        try:
            user_id = text_field(data, "userId")
            name = text_field(data, "name")
            email = (text_field(data, "email") or "").lower()
            gender = (text_field(data, "gender") or "").lower()
            face_data = text_field(data, "faceData")
        except PayloadError as exc:
            return jsonify({"error": str(exc)}), 400
        password = data.get("password") or ""

        if not all([user_id, name, email, password, data.get("dob"), gender]):
            return jsonify({"error": "userId, name, email, password, dob and gender are required"}), 400
        if not isinstance(password, str):
            return jsonify({"error": "password must be text."}), 400
        if len(password) < MIN_PASSWORD_LENGTH:
            return jsonify({"error": "Password must be at least 8 characters long"}), 400
        if gender not in GENDERS:
            return jsonify({"error": "Invalid gender"}), 400
        try:
            dob = date_field(data, "dob")
        except PayloadError as exc:
            return jsonify({"error": str(exc)}), 400

        existing = Voter.query.filter(
            or_(Voter.id == user_id, Voter.email == email)
        ).first()
        if existing:
            return jsonify({"error": "User already exists"}), 400

        voter = Voter(
            id=user_id,
            name=name,
            email=email,
            dob=dob,
            gender=gender,
            face_data=face_data,
            password_hash=hash_password(password),
        )
        try:
            db.session.add(voter)
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            app.logger.exception("User registration error")
            return jsonify({"error": "Registration failed"}), 500

        app.logger.info("Registered voter %s", voter.id)
        return jsonify({"success": True, "message": "User registered successfully"}), 201

    @app.route("/api/auth/login", methods=["POST"])
    def login_voter():
        data = request.get_json(silent=True) or {}
        user_id = str(data.get("userId") or "").strip()
        password = data.get("password")

        voter = db.session.get(Voter, user_id) if user_id else None
        if voter is None or not password_matches(voter.password_hash, password):
            return jsonify({"error": "Invalid credentials"}), 401

        voter.last_login = datetime.utcnow()
        db.session.commit()
        login_user(voter, remember=bool(data.get("remember")))

        return jsonify(
            {
                "success": True,
                "message": "Login successful",
                "user": {"id": voter.id, "name": voter.name, "email": voter.email},
            }
        )

    @app.route("/api/auth/logout", methods=["POST"])
    @login_required
    def logout_voter():
        logout_user()
        return jsonify({"success": True})

    @app.route("/api/auth/me")
    @login_required
    def current_voter():
        return jsonify({"success": True, "user": serialize_voter(current_user)})
