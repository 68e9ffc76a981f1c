from datetime import datetime

from flask import current_app
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from securevote.extensions import db
from securevote.models import Ballot, Candidate, Election, Voter, VotingSession
from securevote.services.identity import get_identity_verifier
from securevote.services.voting.errors import (
    AlreadyVoted,
    ElectionNotActive,
    IdentityNotVerified,
    IncompleteSelection,
    InvalidReference,
    StoreFailure,
)


def parse_selections(raw_votes):
    """Turn the ``votes`` request field into ``(position_id, candidate_id)`` pairs.

    Accepts the camelCase keys the voting page sends as well as snake_case.
    Order is preserved.
    """
    if not isinstance(raw_votes, list) or not raw_votes:
        raise IncompleteSelection("At least one selection is required.")

    selections = []
    for index, item in enumerate(raw_votes, start=1):
        if not isinstance(item, dict):
            raise InvalidReference(f"Selection {index} is malformed.")
        position_raw = item.get("positionId", item.get("position_id"))
        candidate_raw = item.get("candidateId", item.get("candidate_id"))
        try:
            selections.append((int(position_raw), int(candidate_raw)))
        except (TypeError, ValueError):
            raise InvalidReference(
                f"Selection {index} must name a position and a candidate."
            ) from None
    return selections


def has_voted(voter_id, election_id):
    return (
        db.session.query(Ballot.id)
        .filter_by(voter_id=voter_id, election_id=election_id)
        .first()
        is not None
    )


def _session_recorded(voter_id, election_id):
    return (
        db.session.query(VotingSession.id)
        .filter_by(voter_id=voter_id, election_id=election_id)
        .first()
        is not None
    )


def _validate_selections(election, selections):
    positions = {position.id: position for position in election.positions}
    if not positions:
        raise IncompleteSelection(f"Election {election.id} has no positions.")

    candidates = {
        candidate.id: candidate
        for candidate in Candidate.query.filter(
            Candidate.position_id.in_(list(positions))
        ).all()
    }
    counts = {position_id: 0 for position_id in positions}
    seen = set()

    for position_id, candidate_id in selections:
        if position_id not in positions:
            raise InvalidReference(
                f"Position {position_id} is not part of election {election.id}."
            )
        candidate = candidates.get(candidate_id)
        if candidate is None or candidate.position_id != position_id:
            raise InvalidReference(
                f"Candidate {candidate_id} is not standing for position {position_id}."
            )
        if candidate_id in seen:
            raise IncompleteSelection(f"Candidate {candidate_id} was selected twice.")
        seen.add(candidate_id)
        counts[position_id] += 1

    for position in election.positions:
        chosen = counts[position.id]
        if chosen < position.min_selections or chosen > position.max_selections:
            if position.min_selections == position.max_selections:
                expected = f"exactly {position.min_selections}"
            else:
                expected = (
                    f"between {position.min_selections} and {position.max_selections}"
                )
            raise IncompleteSelection(
                f"Position '{position.title}' needs {expected} selection(s), got {chosen}."
            )

    return list(selections)


def _check_ballot(voter_id, election_id, selections, verifier):
    voter = db.session.get(Voter, voter_id)
    if voter is None:
        raise InvalidReference(f"Voter {voter_id} does not exist.")

    election = db.session.get(Election, election_id)
    if election is None:
        raise InvalidReference(f"Election {election_id} does not exist.")
    if not election.is_active:
        raise ElectionNotActive(f"Election {election.id} is {election.status}.")

    if has_voted(voter.id, election.id):
        current_app.logger.info(
            "Rejected repeat ballot from voter %s in election %s", voter.id, election.id
        )
        raise AlreadyVoted()

    pairs = _validate_selections(election, selections)

    if not verifier.verify(voter.id):
        current_app.logger.warning(
            "Identity verification failed for voter %s in election %s",
            voter.id,
            election.id,
        )
        raise IdentityNotVerified()

    return voter, election, pairs


def cast_vote(voter_id, election_id, selections, verifier=None):
    """Record one voter's complete ballot for an election.

    Either every ballot row, both counter increments and the voting session
    are committed together, or nothing is. Raises a ``BallotError`` subclass
    on refusal, including ``StoreFailure`` when the database cannot be reached
    while checking or writing.
    """
    verifier = verifier or get_identity_verifier()
    try:
        voter, election, pairs = _check_ballot(voter_id, election_id, selections, verifier)
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.error(
            "Store failure while checking ballot for voter %s: %s", voter_id, exc
        )
        raise StoreFailure() from exc

    voter_id, election_id = voter.id, election.id
    cast_at = datetime.utcnow()
    try:
        db.session.add(
            VotingSession(
                voter_id=voter_id,
                election_id=election_id,
                ballot_count=len(pairs),
                cast_at=cast_at,
            )
        )
        db.session.flush()

        for position_id, candidate_id in pairs:
            db.session.add(
                Ballot(
                    voter_id=voter_id,
                    election_id=election_id,
                    position_id=position_id,
                    candidate_id=candidate_id,
                    timestamp=cast_at,
                )
            )
            Candidate.query.filter_by(id=candidate_id).update(
                {Candidate.votes: Candidate.votes + 1}, synchronize_session=False
            )

        Election.query.filter_by(id=election_id).update(
            {Election.votes_cast: Election.votes_cast + 1}, synchronize_session=False
        )
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        if _session_recorded(voter_id, election_id):
            current_app.logger.info(
                "Concurrent ballot from voter %s in election %s lost the race",
                voter_id,
                election_id,
            )
            raise AlreadyVoted() from exc
        current_app.logger.error(
            "Integrity error while recording ballot for voter %s: %s", voter_id, exc
        )
        raise StoreFailure(str(exc.orig)) from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.error(
            "Store failure while recording ballot for voter %s: %s", voter_id, exc
        )
        raise StoreFailure() from exc
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info(
        "Voter %s cast %s ballot(s) in election %s", voter_id, len(pairs), election_id
    )
    return {
        "voter_id": voter_id,
        "election_id": election_id,
        "ballots": len(pairs),
        "timestamp": cast_at,
    }


def _counter_drift(election, ballot_counts, voter_count):
    drift = []
    for position in election.positions:
        for candidate in position.candidates:
            expected = ballot_counts.get(candidate.id, 0)
            if candidate.votes != expected:
                drift.append(
                    {
                        "candidate_id": candidate.id,
                        "recorded": candidate.votes,
                        "actual": expected,
                    }
                )
    votes_cast_drift = None
    if election.votes_cast != voter_count:
        votes_cast_drift = {"recorded": election.votes_cast, "actual": voter_count}
    return drift, votes_cast_drift


def reconcile_counters(election_id):
    """Reset the denormalized counters of one election from its ballots.

    Returns the counters that had drifted, as they were before the repair.
    """
    try:
        election = db.session.get(Election, election_id)
        if election is None:
            raise InvalidReference(f"Election {election_id} does not exist.")

        position_ids = [position.id for position in election.positions]
        ballot_counts = dict(
            db.session.query(Ballot.candidate_id, func.count(Ballot.id))
            .filter(Ballot.election_id == election_id)
            .group_by(Ballot.candidate_id)
            .all()
        )
        voter_count = (
            db.session.query(func.count(func.distinct(Ballot.voter_id)))
            .filter(Ballot.election_id == election_id)
            .scalar()
            or 0
        )
        drift, votes_cast_drift = _counter_drift(election, ballot_counts, voter_count)

        if position_ids:
            candidate_total = (
                select(func.count(Ballot.id))
                .where(Ballot.candidate_id == Candidate.id)
                .scalar_subquery()
            )
            db.session.execute(
                update(Candidate)
                .where(Candidate.position_id.in_(position_ids))
                .values(votes=candidate_total)
                .execution_options(synchronize_session=False)
            )
        voter_total = (
            select(func.count(func.distinct(Ballot.voter_id)))
            .where(Ballot.election_id == Election.id)
            .scalar_subquery()
        )
        db.session.execute(
            update(Election)
            .where(Election.id == election_id)
            .values(votes_cast=voter_total)
            .execution_options(synchronize_session=False)
        )
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.error(
            "Counter reconciliation failed for election %s: %s", election_id, exc
        )
        raise StoreFailure() from exc

    if drift or votes_cast_drift:
        current_app.logger.warning(
            "Repaired %s candidate counter(s) in election %s (votes_cast drift: %s)",
            len(drift),
            election_id,
            votes_cast_drift,
        )
    return {
        "election_id": election_id,
        "candidates": drift,
        "votes_cast": votes_cast_drift,
    }
