from datetime import datetime

from flask import g, jsonify, request
from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError

from securevote.extensions import db
from securevote.models import Admin, Ballot, Candidate, Election, Position, Voter, VotingSession
from securevote.models.admin import ADMIN_ROLES
from securevote.models.election import ELECTION_STATUSES
from securevote.routes.auth import MIN_PASSWORD_LENGTH, serialize_voter
from securevote.routes.public import (
    serialize_candidate,
    serialize_election,
    serialize_position,
)
from securevote.routes.validation import PayloadError, date_field, int_field, text_field
from securevote.routes.votes import ballot_error_response, results_payload
from securevote.services.security import (
    admin_required,
    generate_admin_token,
    hash_password,
    password_matches,
)
from securevote.services.voting import (
    BallotError,
    StoreFailure,
    compute_results,
    dashboard_stats,
    reconcile_counters,
)


def build_candidate(data):
    if not isinstance(data, dict):
        raise PayloadError("Each candidate must be an object.")
    return Candidate(
        name=text_field(data, "name", required=True),
        party=text_field(data, "party"),
        agenda=text_field(data, "agenda"),
        symbol=text_field(data, "symbol"),
        votes=0,
    )


def build_position(data):
    if not isinstance(data, dict):
        raise PayloadError("Each position must be an object.")
    min_selections = int_field(data, "minSelections", 1)
    max_selections = int_field(data, "maxSelections", 1)
    if min_selections < 0:
        raise PayloadError("minSelections cannot be negative.")
    if max_selections < 1 or max_selections < min_selections:
        raise PayloadError("maxSelections must be at least 1 and not below minSelections.")

    position = Position(
        title=text_field(data, "title", required=True),
        description=text_field(data, "description"),
        min_selections=min_selections,
        max_selections=max_selections,
    )
    for candidate_data in data.get("candidates") or []:
        position.candidates.append(build_candidate(candidate_data))
    return position


def check_votable(election):
    """Raise unless every position can be filled the way a ballot requires."""
    if not election.positions:
        raise PayloadError("An election needs at least one position before voting opens.")
    for position in election.positions:
        needed = max(position.min_selections, 1)
        if len(position.candidates) < needed:
            raise PayloadError(
                f"Position '{position.title}' needs at least {needed} candidate(s) "
                "before voting opens."
            )


def build_election(data):
    start_date = date_field(data, "startDate")
    end_date = date_field(data, "endDate")
    if end_date < start_date:
        raise PayloadError("endDate cannot be before startDate.")

    status = text_field(data, "status") or "upcoming"
    if status not in ELECTION_STATUSES:
        raise PayloadError("Invalid status value.")

    total_voters = int_field(data, "totalVoters", 0)
    if total_voters < 0:
        raise PayloadError("totalVoters cannot be negative.")

    election = Election(
        title=text_field(data, "title", required=True),
        description=text_field(data, "description"),
        start_date=start_date,
        end_date=end_date,
        status=status,
        type=text_field(data, "type"),
        total_voters=total_voters,
        votes_cast=0,
    )
    for position_data in data.get("positions") or []:
        election.positions.append(build_position(position_data))
    if election.status == "active":
        check_votable(election)
    return election


def serialize_admin(admin):
    return {
        "id": admin.id,
        "username": admin.username,
        "email": admin.email,
        "role": admin.role,
    }


def register_admin_routes(app):
    @app.route("/api/admin/auth/login", methods=["POST"])
    def admin_login():
        data = request.get_json(silent=True) or {}
        username = data.get("username")
        username = username.strip() if isinstance(username, str) else ""

        admin = Admin.query.filter_by(username=username, is_active=True).first()
        if admin is None or not password_matches(admin.password_hash, data.get("password")):
            app.logger.warning("Failed admin login for %s", username or "<blank>")
            return jsonify({"error": "Invalid credentials"}), 401

        admin.last_login = datetime.utcnow()
        db.session.commit()

        return jsonify(
            {
                "success": True,
                "message": "Login successful",
                "token": generate_admin_token(admin),
                "admin": serialize_admin(admin),
            }
        )

    @app.route("/api/admin/auth/register", methods=["POST"])
    @admin_required("super_admin")
    def admin_register():
        data = request.get_json(silent=True) or {}
        try:
            username = text_field(data, "username")
            email = (text_field(data, "email") or "").lower()
            role = text_field(data, "role") or "admin"
        except PayloadError as exc:
            return jsonify({"error": str(exc)}), 400
        password = data.get("password") or ""

        if not username or not email or not password:
            return jsonify({"error": "username, email and password are required"}), 400
        if not isinstance(password, str):
            return jsonify({"error": "password must be text."}), 400
        if len(password) < MIN_PASSWORD_LENGTH:
            return jsonify({"error": "Password must be at least 8 characters long"}), 400
        if role not in ADMIN_ROLES:
            return jsonify({"error": "Invalid role"}), 400

        existing = Admin.query.filter(
            or_(Admin.username == username, Admin.email == email)
        ).first()
        if existing:
            return jsonify({"error": "Admin already exists"}), 400

        admin = Admin(
            username=username,
            email=email,
            password_hash=hash_password(password),
            role=role,
        )
        try:
            db.session.add(admin)
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            app.logger.exception("Admin registration error")
            return jsonify({"error": "Failed to create admin"}), 500

        app.logger.info("Admin %s created by %s", admin.username, g.admin.username)
        return (
            jsonify(
                {
                    "success": True,
                    "message": "Admin created successfully",
                    "adminId": admin.id,
                }
            ),
            201,
        )

    @app.route("/api/admin/dashboard/stats")
    @admin_required()
    def admin_dashboard_stats():
        return jsonify({"success": True, "stats": dashboard_stats()})

    @app.route("/api/admin/users")
    @admin_required()
    def admin_users():
        sessions_by_voter = dict(
            db.session.query(VotingSession.voter_id, func.count(VotingSession.id))
            .group_by(VotingSession.voter_id)
            .all()
        )
        voters = Voter.query.order_by(Voter.registered_at.desc()).all()

        return jsonify(
            {
                "success": True,
                "users": [
                    {
                        **serialize_voter(voter),
                        "elections_voted": sessions_by_voter.get(voter.id, 0),
                    }
                    for voter in voters
                ],
            }
        )

    @app.route("/api/admin/elections", methods=["POST"])
    @admin_required("super_admin", "admin")
    def admin_create_election():
        data = request.get_json(silent=True) or {}
        try:
            election = build_election(data)
        except PayloadError as exc:
            return jsonify({"ok": False, "error": str(exc)}), 400

        try:
            db.session.add(election)
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            app.logger.exception("Create election error")
            return jsonify({"error": "Database error: Could not create election"}), 500

        app.logger.info("Election %s created by %s", election.id, g.admin.username)
        return (
            jsonify(
                {
                    "ok": True,
                    "election": serialize_election(election),
                    "positions": [
                        serialize_position(position) for position in election.positions
                    ],
                }
            ),
            201,
        )

    @app.route("/api/admin/elections/<int:election_id>/status", methods=["PATCH", "POST"])
    @admin_required("super_admin", "admin")
    def admin_update_election_status(election_id):
        election = db.session.get(Election, election_id)
        if election is None:
            return jsonify({"error": "Election not found"}), 404

        data = request.get_json(silent=True) or {}
        try:
            new_status = (text_field(data, "status") or "").lower()
        except PayloadError:
            new_status = None
        if new_status not in ELECTION_STATUSES:
            return jsonify({"error": "Invalid status value"}), 400
        if (
            new_status == "upcoming"
            and Ballot.query.filter_by(election_id=election.id).first() is not None
        ):
            return jsonify({"error": "An election with ballots cannot go back to upcoming"}), 400
        if new_status == "active":
            try:
                check_votable(election)
            except PayloadError as exc:
                return jsonify({"error": str(exc)}), 400

        election.status = new_status
        db.session.commit()
        app.logger.info(
            "Election %s status set to %s by %s", election.id, new_status, g.admin.username
        )
        return jsonify({"ok": True, "election": serialize_election(election)})

    @app.route("/api/admin/elections/<int:election_id>/positions", methods=["POST"])
    @admin_required("super_admin", "admin")
    def admin_add_position(election_id):
        election = db.session.get(Election, election_id)
        if election is None:
            return jsonify({"error": "Election not found"}), 404
        if election.status != "upcoming":
            return jsonify({"error": "Positions can only be added before voting opens"}), 400

        try:
            position = build_position(request.get_json(silent=True) or {})
        except PayloadError as exc:
            return jsonify({"ok": False, "error": str(exc)}), 400

        election.positions.append(position)
        db.session.commit()
        return jsonify({"ok": True, "position": serialize_position(position)}), 201

    @app.route("/api/admin/positions/<int:position_id>/candidates", methods=["POST"])
    @admin_required("super_admin", "admin")
    def admin_add_candidate(position_id):
        position = db.session.get(Position, position_id)
        if position is None:
            return jsonify({"error": "Position not found"}), 404
        if position.election.status != "upcoming":
            return jsonify({"error": "Candidates can only be added before voting opens"}), 400

        try:
            candidate = build_candidate(request.get_json(silent=True) or {})
        except PayloadError as exc:
            return jsonify({"ok": False, "error": str(exc)}), 400

        position.candidates.append(candidate)
        db.session.commit()
        return jsonify({"ok": True, "candidate": serialize_candidate(candidate)}), 201

    @app.route("/api/admin/elections/<int:election_id>", methods=["DELETE"])
    @admin_required("super_admin")
    def admin_delete_election(election_id):
        election = db.session.get(Election, election_id)
        if election is None:
            return jsonify({"error": "Election not found"}), 404

        if Ballot.query.filter_by(election_id=election.id).first() is not None:
            return jsonify({"error": "Elections with recorded ballots cannot be deleted"}), 400

        try:
            db.session.delete(election)
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            app.logger.exception("Delete election error")
            return jsonify({"error": "Database error: Could not delete election"}), 500

        app.logger.info("Election %s deleted by %s", election_id, g.admin.username)
        return jsonify({"ok": True})

    @app.route("/api/admin/elections/<int:election_id>/results")
    @admin_required()
    def admin_election_results(election_id):
        try:
            election = db.session.get(Election, election_id)
            if election is None:
                return jsonify({"error": "Election not found"}), 404
            payload = results_payload(compute_results(election))
            payload["election"] = serialize_election(election)
        except SQLAlchemyError:
            db.session.rollback()
            app.logger.exception("Admin results error")
            return ballot_error_response(StoreFailure())

        return jsonify(payload)

    @app.route("/api/admin/elections/<int:election_id>/recount", methods=["POST"])
    @admin_required("super_admin", "admin")
    def admin_recount(election_id):
        try:
            report = reconcile_counters(election_id)
        except BallotError as exc:
            if exc.kind == "invalid_reference":
                return jsonify({"error": "Election not found"}), 404
            return ballot_error_response(exc)

        return jsonify({"success": True, "repaired": report})
