from datetime import datetime

from flask import jsonify

from securevote.extensions import db
from securevote.models import Election
from securevote.services.voting import election_overview


def _date(value):
    return value.isoformat() if value else None


def serialize_candidate(candidate):
    return {
        "id": candidate.id,
        "position_id": candidate.position_id,
        "name": candidate.name,
        "party": candidate.party,
        "agenda": candidate.agenda,
        "symbol": candidate.symbol,
        "votes": candidate.votes,
    }


def serialize_position(position, with_candidates=True):
    payload = {
        "id": position.id,
        "election_id": position.election_id,
        "title": position.title,
        "description": position.description,
        "min_selections": position.min_selections,
        "max_selections": position.max_selections,
    }
    if with_candidates:
        payload["candidates"] = [
            serialize_candidate(candidate) for candidate in position.candidates
        ]
    return payload


def serialize_election(election, votes_cast=None, participation_rate=None):
    payload = {
        "id": election.id,
        "title": election.title,
        "description": election.description,
        "start_date": _date(election.start_date),
        "end_date": _date(election.end_date),
        "status": election.status,
        "type": election.type,
        "total_voters": election.total_voters,
        "votes_cast": election.votes_cast if votes_cast is None else votes_cast,
        "created_at": _date(election.created_at),
    }
    if participation_rate is not None:
        payload["participation_rate"] = participation_rate
    return payload


def register_public_routes(app):
    @app.route("/api/health")
    def health():
        return jsonify(
            {
                "status": "OK",
                "message": "SecureVote Server is running",
                "timestamp": datetime.utcnow().isoformat(),
            }
        )

    @app.route("/api/elections")
    def list_elections():
        try:
            overview = election_overview()
        except Exception:
            app.logger.exception("Get elections error")
            return jsonify({"error": "Failed to fetch elections"}), 500

        return jsonify(
            {
                "success": True,
                "elections": [
                    serialize_election(
                        row["election"],
                        votes_cast=row["votes_cast"],
                        participation_rate=row["participation_rate"],
                    )
                    for row in overview
                ],
            }
        )

    @app.route("/api/elections/<int:election_id>")
    def election_detail(election_id):
        election = db.session.get(Election, election_id)
        if election is None:
            return jsonify({"error": "Election not found"}), 404

        return jsonify(
            {
                "success": True,
                "election": serialize_election(election),
                "positions": [
                    serialize_position(position) for position in election.positions
                ],
            }
        )
