from datetime import datetime

from securevote.extensions import db

ELECTION_STATUSES = ("upcoming", "active", "completed")


class Election(db.Model):
    __tablename__ = "elections"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)
    status = db.Column(
        db.Enum(*ELECTION_STATUSES, name="election_status"),
        nullable=False,
        default="upcoming",
    )
    total_voters = db.Column(db.Integer, nullable=False, default=0)
    # Denormalized; kept equal to the number of voting sessions in the same
    # transaction that records them.
    votes_cast = db.Column(db.Integer, nullable=False, default=0)
    type = db.Column(db.String(50), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    positions = db.relationship(
        "Position",
        backref="election",
        lazy=True,
        order_by="Position.id",
        cascade="all, delete-orphan",
    )
    ballots = db.relationship("Ballot", backref="election", lazy=True)
    voting_sessions = db.relationship("VotingSession", backref="election", lazy=True)

    @property
    def is_active(self):
        return self.status == "active"
