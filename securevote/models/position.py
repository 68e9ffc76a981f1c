from securevote.extensions import db


class Position(db.Model):
    __tablename__ = "positions"

    id = db.Column(db.Integer, primary_key=True)
    election_id = db.Column(
        db.Integer, db.ForeignKey("elections.id", ondelete="CASCADE"), nullable=False
    )
    title = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text, nullable=True)
    max_selections = db.Column(db.Integer, nullable=False, default=1)
    min_selections = db.Column(db.Integer, nullable=False, default=1)

    candidates = db.relationship(
        "Candidate",
        backref="position",
        lazy=True,
        order_by="Candidate.id",
        cascade="all, delete-orphan",
    )
