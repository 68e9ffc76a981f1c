from datetime import datetime

from securevote.extensions import db


class VotingSession(db.Model):
    """One row per successful ballot submission.

    The unique (user_id, election_id) pair is what turns a second, concurrent
    submission by the same voter into an integrity error at commit time.
    """

    __tablename__ = "voting_sessions"

    id = db.Column(db.Integer, primary_key=True)
    voter_id = db.Column(
        "user_id", db.String(50), db.ForeignKey("users.id"), nullable=False
    )
    election_id = db.Column(db.Integer, db.ForeignKey("elections.id"), nullable=False)
    ballot_count = db.Column(db.Integer, nullable=False)
    cast_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint("user_id", "election_id", name="uq_voting_sessions_user_election"),
    )
