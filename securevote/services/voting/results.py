from sqlalchemy import func

from securevote.extensions import db
from securevote.models import Ballot, Election, Voter, VotingSession


def share(part, whole):
    return round(part / whole * 100, 1) if whole > 0 else 0


def _ballot_counts(election_id):
    return dict(
        db.session.query(Ballot.candidate_id, func.count(Ballot.id))
        .filter(Ballot.election_id == election_id)
        .group_by(Ballot.candidate_id)
        .all()
    )


def _distinct_voters(election_id):
    return (
        db.session.query(func.count(func.distinct(Ballot.voter_id)))
        .filter(Ballot.election_id == election_id)
        .scalar()
        or 0
    )


def tally_position(position, ballot_counts):
    rows = [
        {"candidate": candidate, "votes": ballot_counts.get(candidate.id, 0)}
        for candidate in position.candidates
    ]
    total_votes = sum(row["votes"] for row in rows)
    for row in rows:
        row["percentage"] = share(row["votes"], total_votes)

    rows.sort(
        key=lambda row: (-row["votes"], row["candidate"].name.lower(), row["candidate"].id)
    )

    top_votes = rows[0]["votes"] if rows else 0
    leaders = [row["candidate"] for row in rows if top_votes > 0 and row["votes"] == top_votes]

    return {
        "position": position,
        "total_votes": total_votes,
        "candidates": rows,
        "leaders": leaders,
        "is_tie": len(leaders) > 1,
    }


def compute_results(election):
    """Live results of one election, read from the ballot rows.

    Candidates within each position are ordered by votes, then name, then id.
    """
    ballot_counts = _ballot_counts(election.id)
    votes_cast = _distinct_voters(election.id)
    total_voters = election.total_voters or 0

    return {
        "election": election,
        "votes_cast": votes_cast,
        "total_voters": total_voters,
        "participation_rate": share(votes_cast, total_voters),
        "positions": [
            tally_position(position, ballot_counts) for position in election.positions
        ],
    }


def flatten_results(results):
    rows = []
    for position_result in results["positions"]:
        for row in position_result["candidates"]:
            rows.append(
                {
                    "position": position_result["position"].title,
                    "candidate_name": row["candidate"].name,
                    "candidate_party": row["candidate"].party,
                    "vote_count": row["votes"],
                    "percentage": row["percentage"],
                }
            )
    return rows


def election_overview():
    voters_by_election = dict(
        db.session.query(Ballot.election_id, func.count(func.distinct(Ballot.voter_id)))
        .group_by(Ballot.election_id)
        .all()
    )

    overview = []
    for election in Election.query.order_by(
        Election.start_date.desc(), Election.id.desc()
    ).all():
        votes_cast = voters_by_election.get(election.id, 0)
        overview.append(
            {
                "election": election,
                "votes_cast": votes_cast,
                "participation_rate": share(votes_cast, election.total_voters or 0),
            }
        )
    return overview


def dashboard_stats():
    return {
        "totalUsers": db.session.query(func.count(Voter.id)).scalar() or 0,
        "totalElections": db.session.query(func.count(Election.id)).scalar() or 0,
        "activeElections": Election.query.filter_by(status="active").count(),
        "totalVotesCast": db.session.query(func.count(VotingSession.id)).scalar() or 0,
    }
