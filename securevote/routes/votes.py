from flask import jsonify, request
from flask_login import current_user, login_required
from sqlalchemy.exc import SQLAlchemyError

from securevote.extensions import db
from securevote.models import Election
from securevote.routes.public import serialize_candidate, serialize_position
from securevote.services.voting import (
    BallotError,
    StoreFailure,
    cast_vote,
    compute_results,
    flatten_results,
    has_voted,
    parse_selections,
)

ERROR_STATUS = {
    "already_voted": 400,
    "incomplete_selection": 400,
    "invalid_reference": 400,
    "election_not_active": 403,
    "identity_not_verified": 403,
    "store_failure": 503,
}


def ballot_error_response(exc):
    body = {
        "success": False,
        "error": exc.message,
        "kind": exc.kind,
        "retryable": exc.retryable,
    }
    if exc.detail:
        body["detail"] = exc.detail
    return jsonify(body), ERROR_STATUS.get(exc.kind, 400)


def results_payload(results):
    return {
        "success": True,
        "election_id": results["election"].id,
        "votes_cast": results["votes_cast"],
        "total_voters": results["total_voters"],
        "participation_rate": results["participation_rate"],
        "results": flatten_results(results),
        "positions": [
            {
                "position": serialize_position(row["position"], with_candidates=False),
                "total_votes": row["total_votes"],
                "is_tie": row["is_tie"],
                "leaders": [candidate.id for candidate in row["leaders"]],
                "candidates": [
                    {
                        **serialize_candidate(item["candidate"]),
                        "votes": item["votes"],
                        "percentage": item["percentage"],
                    }
                    for item in row["candidates"]
                ],
            }
            for row in results["positions"]
        ],
    }


def register_vote_routes(app):
    @app.route("/api/votes/cast", methods=["POST"])
    @login_required
    def cast_vote_route():
        data = request.get_json(silent=True) or {}

        user_id = data.get("userId")
        if user_id is not None and str(user_id) != current_user.id:
            app.logger.warning(
                "Voter %s tried to cast a ballot as %s", current_user.id, user_id
            )
            return jsonify({"error": "You can only cast your own ballot"}), 403

        try:
            election_id = int(data.get("electionId"))
        except (TypeError, ValueError):
            return jsonify({"error": "electionId is required"}), 400

        try:
            selections = parse_selections(data.get("votes"))
            receipt = cast_vote(current_user.id, election_id, selections)
        except BallotError as exc:
            return ballot_error_response(exc)
        except Exception:
            db.session.rollback()
            app.logger.exception("Vote casting error")
            return jsonify({"error": "Failed to cast vote"}), 500

        return jsonify(
            {
                "success": True,
                "message": "Vote cast successfully",
                "ballots": receipt["ballots"],
                "timestamp": receipt["timestamp"].isoformat(),
            }
        )

    @app.route("/api/votes/status/<int:election_id>")
    @login_required
    def vote_status(election_id):
        try:
            if db.session.get(Election, election_id) is None:
                return jsonify({"error": "Election not found"}), 404
            voted = has_voted(current_user.id, election_id)
        except SQLAlchemyError:
            db.session.rollback()
            app.logger.exception("Vote status error")
            return ballot_error_response(StoreFailure())

        return jsonify({"success": True, "election_id": election_id, "has_voted": voted})

    @app.route("/api/votes/results/<int:election_id>")
    def election_results(election_id):
        try:
            election = db.session.get(Election, election_id)
            if election is None:
                return jsonify({"error": "Election not found"}), 404
            payload = results_payload(compute_results(election))
        except SQLAlchemyError:
            db.session.rollback()
            app.logger.exception("Get results error")
            return ballot_error_response(StoreFailure())

        return jsonify(payload)
