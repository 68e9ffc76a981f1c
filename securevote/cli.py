from datetime import date

import click

from securevote.extensions import db
from securevote.models import Admin, Candidate, Election, Position
from securevote.models.admin import ADMIN_ROLES
from securevote.services.security import hash_password
from securevote.services.voting import BallotError, reconcile_counters

DEMO_POSITIONS = [
    ("President", "Chief executive officer"),
    ("Vice President", "Supports the president"),
    ("Secretary", "Manages records"),
]

DEMO_CANDIDATES = [
    ("John Smith", "Unity Party", "Student welfare and campus improvements", "👥"),
    ("Sarah Johnson", "Progress Alliance", "Innovation and digital transformation", "🚀"),
    ("Mike Chen", "Green Future", "Sustainability and environment", "🌱"),
]


def seed_demo_election():
    """Insert the sample student council election unless any election exists."""
    if Election.query.first() is not None:
        return None

    election = Election(
        title="Student Council Election 2024",
        description="Vote for your student council representatives",
        start_date=date(2024, 3, 1),
        end_date=date(2024, 3, 15),
        status="active",
        type="student",
        total_voters=1000,
        votes_cast=0,
    )
    for title, description in DEMO_POSITIONS:
        position = Position(
            title=title, description=description, min_selections=1, max_selections=1
        )
        for name, party, agenda, symbol in DEMO_CANDIDATES:
            position.candidates.append(
                Candidate(name=name, party=party, agenda=agenda, symbol=symbol, votes=0)
            )
        election.positions.append(position)

    db.session.add(election)
    db.session.commit()
    return election


def register_cli(app):
    @app.cli.command("init-db")
    def init_db_command():
        """Create every table that does not exist yet."""
        db.create_all()
        click.echo("Database tables initialized.")

    @app.cli.command("seed-demo")
    def seed_demo_command():
        """Insert a sample election with three positions."""
        election = seed_demo_election()
        if election is None:
            click.echo("Sample data already exists.")
        else:
            click.echo(f"Created election {election.id}: {election.title}")

    @app.cli.command("create-admin")
    @click.option("--username", required=True)
    @click.option("--email", required=True)
    @click.option("--password", prompt=True, hide_input=True, confirmation_prompt=True)
    @click.option("--role", type=click.Choice(ADMIN_ROLES), default="admin", show_default=True)
    def create_admin_command(username, email, password, role):
        """Create an admin account for the admin API."""
        email = email.strip().lower()
        if Admin.query.filter((Admin.username == username) | (Admin.email == email)).first():
            raise click.ClickException("Admin already exists.")

        db.session.add(
            Admin(
                username=username,
                email=email,
                password_hash=hash_password(password),
                role=role,
            )
        )
        db.session.commit()
        click.echo(f"Created {role} '{username}'.")

    @app.cli.command("recount")
    @click.argument("election_id", type=int)
    def recount_command(election_id):
        """Rebuild an election's vote counters from its ballots."""
        try:
            report = reconcile_counters(election_id)
        except BallotError as exc:
            raise click.ClickException(str(exc)) from exc

        for row in report["candidates"]:
            click.echo(
                f"candidate {row['candidate_id']}: {row['recorded']} -> {row['actual']}"
            )
        if report["votes_cast"]:
            click.echo(
                f"votes_cast: {report['votes_cast']['recorded']} -> {report['votes_cast']['actual']}"
            )
        if not report["candidates"] and not report["votes_cast"]:
            click.echo("Counters already match the ballots.")
