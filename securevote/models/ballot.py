from datetime import datetime

from securevote.extensions import db


class Ballot(db.Model):
    __tablename__ = "votes"

    id = db.Column(db.Integer, primary_key=True)
    voter_id = db.Column(
        "user_id", db.String(50), db.ForeignKey("users.id"), nullable=False
    )
    election_id = db.Column(db.Integer, db.ForeignKey("elections.id"), nullable=False)
    position_id = db.Column(db.Integer, db.ForeignKey("positions.id"), nullable=False)
    candidate_id = db.Column(
        db.Integer, db.ForeignKey("candidates.id"), nullable=False
    )
    timestamp = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    position = db.relationship("Position")
    candidate = db.relationship("Candidate")

    # One row per chosen candidate, so a multi-seat position holds several rows
    # for the same (user, election, position). Single-choice positions still
    # get at most one row because max_selections is checked before insert.
    # One ballot per (user, election) is enforced by voting_sessions.
    __table_args__ = (
        db.UniqueConstraint(
            "user_id",
            "election_id",
            "position_id",
            "candidate_id",
            name="uq_votes_user_election_position_candidate",
        ),
        db.Index("ix_votes_election_candidate", "election_id", "candidate_id"),
    )
