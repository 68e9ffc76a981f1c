from datetime import date
from itertools import count
from pathlib import Path
import sys
import os

import pytest

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

# Safety default for any module-level app creation during test imports.
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

from securevote import create_app
from securevote.extensions import db
from securevote.models import Admin, Candidate, Election, Position, Voter
from securevote.services.security import generate_admin_token, hash_password


@pytest.fixture()
def app(tmp_path: Path):
    db_file = tmp_path / "test.sqlite3"
    app = create_app(
        {
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_file}",
            "SQLALCHEMY_ENGINE_OPTIONS": {},
            "SECRET_KEY": "test-secret",
            "IDENTITY_VERIFIER": "trusting",
        }
    )

    with app.app_context():
        driver = db.engine.url.drivername
        if driver != "sqlite":
            raise RuntimeError(
                f"Test database must be SQLite, got '{driver}'. Refusing to run destructive test setup."
            )
        db.drop_all()
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def db_session(app):
    with app.app_context():
        yield db.session


@pytest.fixture()
def make_voter(db_session):
    numbers = count(1)

    def _make(voter_id=None, face_data=None, password_hash="hashed-password"):
        number = next(numbers)
        voter = Voter(
            id=voter_id or f"V{number}",
            name=f"Voter {number}",
            email=f"voter{number}@example.com",
            dob=date(2000, 1, 1),
            gender="other",
            face_data=face_data,
            password_hash=password_hash,
        )
        db_session.add(voter)
        db_session.commit()
        return voter

    return _make


@pytest.fixture()
def make_election(db_session):
    """Build an election from ``(title, min, max, [candidate names])`` tuples."""

    def _make(positions=None, status="active", total_voters=10, title="E1"):
        election = Election(
            title=title,
            start_date=date(2024, 3, 1),
            end_date=date(2024, 3, 15),
            status=status,
            total_voters=total_voters,
        )
        for position_title, min_selections, max_selections, names in positions or [
            ("President", 1, 1, ["A", "B"])
        ]:
            position = Position(
                title=position_title,
                min_selections=min_selections,
                max_selections=max_selections,
            )
            for name in names:
                position.candidates.append(Candidate(name=name, party=f"{name} Party"))
            election.positions.append(position)
        db_session.add(election)
        db_session.commit()
        return election

    return _make


@pytest.fixture()
def voter(make_voter):
    return make_voter(voter_id="V1")


@pytest.fixture()
def voter_client(client, voter):
    with client.session_transaction() as session:
        session["_user_id"] = voter.id
        session["_fresh"] = True
    return client


@pytest.fixture()
def make_admin(db_session):
    def _make(username="superadmin", role="super_admin", password="admin-password"):
        admin = Admin(
            username=username,
            email=f"{username}@securevote.com",
            password_hash=hash_password(password),
            role=role,
        )
        db_session.add(admin)
        db_session.commit()
        return admin

    return _make


@pytest.fixture()
def admin_headers(make_admin):
    admin = make_admin()
    return {"Authorization": f"Bearer {generate_admin_token(admin)}"}
