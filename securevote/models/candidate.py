from securevote.extensions import db


class Candidate(db.Model):
    __tablename__ = "candidates"

    id = db.Column(db.Integer, primary_key=True)
    position_id = db.Column(
        db.Integer, db.ForeignKey("positions.id", ondelete="CASCADE"), nullable=False
    )
    name = db.Column(db.String(100), nullable=False)
    party = db.Column(db.String(100), nullable=True)
    agenda = db.Column(db.Text, nullable=True)
    symbol = db.Column(db.String(10), nullable=True)
    # Denormalized; must equal the number of ballots naming this candidate.
    votes = db.Column(db.Integer, nullable=False, default=0)
