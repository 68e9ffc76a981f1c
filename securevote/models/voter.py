from datetime import datetime

from flask_login import UserMixin
from sqlalchemy.dialects.mysql import LONGTEXT

from securevote.extensions import db

GENDERS = ("male", "female", "other")


class Voter(UserMixin, db.Model):
    __tablename__ = "users"

    # Voters pick their own id at registration (e.g. a student number).
    id = db.Column(db.String(50), primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(100), unique=True, nullable=False)
    dob = db.Column(db.Date, nullable=False)
    gender = db.Column(db.Enum(*GENDERS, name="voter_gender"), nullable=False)
    face_data = db.Column(db.Text().with_variant(LONGTEXT(), "mysql"), nullable=True)
    password_hash = db.Column(db.String(255), nullable=True)
    registered_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    last_login = db.Column(db.DateTime, nullable=True)

    ballots = db.relationship("Ballot", backref="voter", lazy=True)
    voting_sessions = db.relationship("VotingSession", backref="voter", lazy=True)
