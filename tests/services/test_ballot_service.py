import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, scoped_session

from securevote.extensions import db
from securevote.models import Ballot, Candidate, Election, VotingSession
from securevote.services.identity import EnrolledFaceVerifier, IdentityVerifier
from securevote.services.voting import (
    AlreadyVoted,
    ElectionNotActive,
    IdentityNotVerified,
    IncompleteSelection,
    InvalidReference,
    StoreFailure,
    cast_vote,
    has_voted,
    parse_selections,
    reconcile_counters,
)
from securevote.services.voting import ballot as ballot_module


class RejectingVerifier(IdentityVerifier):
    def verify(self, voter_id):
        return False


def ballot_count(**filters):
    return Ballot.query.filter_by(**filters).count()


def test_cast_vote_records_ballot_and_counters(voter, make_election):
    election = make_election()
    president = election.positions[0]
    candidate_a, candidate_b = president.candidates

    receipt = cast_vote(voter.id, election.id, [(president.id, candidate_a.id)])

    assert receipt["ballots"] == 1
    assert receipt["timestamp"] is not None
    assert candidate_a.votes == 1
    assert candidate_b.votes == 0
    assert election.votes_cast == 1
    assert has_voted(voter.id, election.id) is True
    assert VotingSession.query.filter_by(voter_id=voter.id).count() == 1


def test_retry_with_other_candidate_is_rejected(voter, make_election):
    election = make_election()
    president = election.positions[0]
    candidate_a, candidate_b = president.candidates
    cast_vote(voter.id, election.id, [(president.id, candidate_a.id)])

    with pytest.raises(AlreadyVoted):
        cast_vote(voter.id, election.id, [(president.id, candidate_b.id)])

    assert candidate_a.votes == 1
    assert candidate_b.votes == 0
    assert election.votes_cast == 1
    assert ballot_count(election_id=election.id) == 1


def test_repeated_submissions_succeed_exactly_once(voter, make_election):
    election = make_election()
    president = election.positions[0]
    candidate_a = president.candidates[0]

    outcomes = []
    for _ in range(5):
        try:
            cast_vote(voter.id, election.id, [(president.id, candidate_a.id)])
            outcomes.append("ok")
        except AlreadyVoted:
            outcomes.append("already_voted")

    assert outcomes.count("ok") == 1
    assert outcomes.count("already_voted") == 4
    assert candidate_a.votes == 1


def test_unique_session_catches_a_race_past_the_precheck(voter, make_election, monkeypatch):
    election = make_election()
    president = election.positions[0]
    candidate_a, candidate_b = president.candidates
    cast_vote(voter.id, election.id, [(president.id, candidate_a.id)])

    # Simulate a concurrent request that read "not voted" before the first committed.
    monkeypatch.setattr(ballot_module, "has_voted", lambda voter_id, election_id: False)

    with pytest.raises(AlreadyVoted):
        cast_vote(voter.id, election.id, [(president.id, candidate_b.id)])

    assert ballot_count(election_id=election.id) == 1
    assert db.session.get(Candidate, candidate_a.id).votes == 1
    assert db.session.get(Candidate, candidate_b.id).votes == 0
    assert db.session.get(Election, election.id).votes_cast == 1


def test_wrong_position_pairing_writes_nothing(voter, make_election):
    election = make_election(
        positions=[
            ("President", 1, 1, ["A", "B"]),
            ("Secretary", 1, 1, ["C", "D"]),
        ]
    )
    president, secretary = election.positions

    with pytest.raises(InvalidReference):
        cast_vote(
            voter.id,
            election.id,
            [
                (president.id, president.candidates[0].id),
                (secretary.id, president.candidates[1].id),
            ],
        )

    assert ballot_count() == 0
    assert VotingSession.query.count() == 0
    assert all(candidate.votes == 0 for candidate in president.candidates)
    assert election.votes_cast == 0
    assert has_voted(voter.id, election.id) is False


def test_position_from_another_election_is_invalid(voter, make_election):
    election = make_election()
    other = make_election(title="E2")
    other_position = other.positions[0]

    with pytest.raises(InvalidReference):
        cast_vote(
            voter.id,
            election.id,
            [(other_position.id, other_position.candidates[0].id)],
        )
    assert ballot_count() == 0


def test_two_seat_position_with_one_selection_is_incomplete(make_voter, make_election):
    voter = make_voter(voter_id="V2")
    election = make_election(positions=[("Council", 2, 2, ["A", "B", "C"])])
    council = election.positions[0]

    with pytest.raises(IncompleteSelection) as excinfo:
        cast_vote(voter.id, election.id, [(council.id, council.candidates[0].id)])

    assert "exactly 2" in str(excinfo.value)
    assert ballot_count() == 0
    assert election.votes_cast == 0


def test_two_seat_position_accepts_two_selections(voter, make_election):
    election = make_election(positions=[("Council", 2, 2, ["A", "B", "C"])])
    council = election.positions[0]
    first, second, third = council.candidates

    receipt = cast_vote(
        voter.id, election.id, [(council.id, first.id), (council.id, third.id)]
    )

    assert receipt["ballots"] == 2
    assert (first.votes, second.votes, third.votes) == (1, 0, 1)
    assert election.votes_cast == 1


def test_uncovered_position_is_incomplete(voter, make_election):
    election = make_election(
        positions=[
            ("President", 1, 1, ["A", "B"]),
            ("Secretary", 1, 1, ["C", "D"]),
        ]
    )
    president = election.positions[0]

    with pytest.raises(IncompleteSelection):
        cast_vote(voter.id, election.id, [(president.id, president.candidates[0].id)])
    assert ballot_count() == 0


def test_optional_position_may_be_skipped(voter, make_election):
    election = make_election(
        positions=[
            ("President", 1, 1, ["A", "B"]),
            ("Advisory", 0, 1, ["C", "D"]),
        ]
    )
    president = election.positions[0]

    receipt = cast_vote(voter.id, election.id, [(president.id, president.candidates[0].id)])
    assert receipt["ballots"] == 1


def test_too_many_selections_are_rejected(voter, make_election):
    election = make_election()
    president = election.positions[0]

    with pytest.raises(IncompleteSelection):
        cast_vote(
            voter.id,
            election.id,
            [(president.id, candidate.id) for candidate in president.candidates],
        )
    assert ballot_count() == 0


def test_same_candidate_twice_is_rejected(voter, make_election):
    election = make_election(positions=[("Council", 1, 2, ["A", "B"])])
    council = election.positions[0]
    candidate_a = council.candidates[0]

    with pytest.raises(IncompleteSelection):
        cast_vote(
            voter.id, election.id, [(council.id, candidate_a.id), (council.id, candidate_a.id)]
        )
    assert ballot_count() == 0


@pytest.mark.parametrize("status", ["upcoming", "completed"])
def test_only_active_elections_accept_ballots(voter, make_election, status):
    election = make_election(status=status)
    president = election.positions[0]

    with pytest.raises(ElectionNotActive):
        cast_vote(voter.id, election.id, [(president.id, president.candidates[0].id)])
    assert ballot_count() == 0


def test_unknown_voter_and_election_are_invalid_references(voter, make_election):
    election = make_election()
    president = election.positions[0]
    selection = [(president.id, president.candidates[0].id)]

    with pytest.raises(InvalidReference):
        cast_vote("nobody", election.id, selection)
    with pytest.raises(InvalidReference):
        cast_vote(voter.id, 9999, selection)


def test_rejected_identity_writes_nothing(voter, make_election):
    election = make_election()
    president = election.positions[0]

    with pytest.raises(IdentityNotVerified):
        cast_vote(
            voter.id,
            election.id,
            [(president.id, president.candidates[0].id)],
            verifier=RejectingVerifier(),
        )
    assert ballot_count() == 0
    assert election.votes_cast == 0


def test_configured_verifier_is_used_by_default(app, make_voter, make_election):
    app.extensions["identity_verifier"] = EnrolledFaceVerifier()
    election = make_election()
    president = election.positions[0]
    selection = [(president.id, president.candidates[0].id)]

    without_face = make_voter()
    with_face = make_voter(face_data="data:image/png;base64,AAAA")

    with pytest.raises(IdentityNotVerified):
        cast_vote(without_face.id, election.id, selection)
    assert cast_vote(with_face.id, election.id, selection)["ballots"] == 1


def test_voter_can_vote_in_two_elections(voter, make_election):
    first = make_election(title="E1")
    second = make_election(title="E2")

    for election in (first, second):
        position = election.positions[0]
        cast_vote(voter.id, election.id, [(position.id, position.candidates[0].id)])

    assert first.votes_cast == 1
    assert second.votes_cast == 1
    assert has_voted(voter.id, first.id) and has_voted(voter.id, second.id)


def test_counters_match_ballots_after_many_sessions(make_voter, make_election):
    election = make_election(
        positions=[
            ("President", 1, 1, ["A", "B"]),
            ("Council", 1, 2, ["C", "D", "E"]),
        ]
    )
    president, council = election.positions
    a, b = president.candidates
    c, d, e = council.candidates

    ballots = [
        [(president.id, a.id), (council.id, c.id), (council.id, d.id)],
        [(president.id, a.id), (council.id, e.id)],
        [(president.id, b.id), (council.id, c.id)],
    ]
    for selections in ballots:
        cast_vote(make_voter().id, election.id, selections)

    for candidate in president.candidates + council.candidates:
        assert candidate.votes == ballot_count(candidate_id=candidate.id)
    distinct_voters = (
        db.session.query(Ballot.voter_id).filter_by(election_id=election.id).distinct().count()
    )
    assert election.votes_cast == distinct_voters == 3


def test_store_failure_rolls_everything_back(voter, make_election, monkeypatch):
    election = make_election()
    president = election.positions[0]
    candidate_a = president.candidates[0]

    def failing_commit(self):
        raise OperationalError("COMMIT", {}, Exception("Lost connection to MySQL server"))

    monkeypatch.setattr(Session, "commit", failing_commit)

    with pytest.raises(StoreFailure) as excinfo:
        cast_vote(voter.id, election.id, [(president.id, candidate_a.id)])

    assert excinfo.value.retryable is True
    monkeypatch.undo()
    assert ballot_count() == 0
    assert VotingSession.query.count() == 0
    assert db.session.get(Candidate, candidate_a.id).votes == 0
    assert db.session.get(Election, election.id).votes_cast == 0


def lost_connection(*args, **kwargs):
    raise OperationalError("SELECT", {}, Exception("Lost connection to MySQL server"))


def test_store_outage_while_loading_is_retryable(voter, make_election, monkeypatch):
    election = make_election()
    president = election.positions[0]
    voter_id, election_id = voter.id, election.id
    selection = [(president.id, president.candidates[0].id)]

    monkeypatch.setattr(scoped_session, "get", lost_connection)

    with pytest.raises(StoreFailure) as excinfo:
        cast_vote(voter_id, election_id, selection)

    assert excinfo.value.retryable is True
    monkeypatch.undo()
    assert ballot_count() == 0
    assert VotingSession.query.count() == 0


def test_store_outage_during_vote_check_is_retryable(voter, make_election, monkeypatch):
    election = make_election()
    president = election.positions[0]
    selection = [(president.id, president.candidates[0].id)]

    monkeypatch.setattr(ballot_module, "has_voted", lost_connection)

    with pytest.raises(StoreFailure):
        cast_vote(voter.id, election.id, selection)

    monkeypatch.undo()
    assert has_voted(voter.id, election.id) is False
    assert db.session.get(Election, election.id).votes_cast == 0


def test_reconcile_counters_reports_store_outage(make_election, monkeypatch):
    election_id = make_election().id
    monkeypatch.setattr(scoped_session, "get", lost_connection)

    with pytest.raises(StoreFailure):
        reconcile_counters(election_id)


def test_reconcile_counters_repairs_drift(make_voter, make_election):
    election = make_election()
    president = election.positions[0]
    candidate_a, candidate_b = president.candidates
    cast_vote(make_voter().id, election.id, [(president.id, candidate_a.id)])
    cast_vote(make_voter().id, election.id, [(president.id, candidate_a.id)])

    candidate_a.votes = 7
    candidate_b.votes = 3
    election.votes_cast = 0
    db.session.commit()

    report = reconcile_counters(election.id)

    assert {row["candidate_id"]: (row["recorded"], row["actual"]) for row in report["candidates"]} == {
        candidate_a.id: (7, 2),
        candidate_b.id: (3, 0),
    }
    assert report["votes_cast"] == {"recorded": 0, "actual": 2}
    assert db.session.get(Candidate, candidate_a.id).votes == 2
    assert db.session.get(Candidate, candidate_b.id).votes == 0
    assert db.session.get(Election, election.id).votes_cast == 2


def test_reconcile_counters_reports_nothing_when_consistent(voter, make_election):
    election = make_election()
    president = election.positions[0]
    cast_vote(voter.id, election.id, [(president.id, president.candidates[1].id)])

    report = reconcile_counters(election.id)
    assert report["candidates"] == []
    assert report["votes_cast"] is None


def test_parse_selections_accepts_both_key_styles():
    assert parse_selections(
        [{"positionId": "1", "candidateId": 2}, {"position_id": 3, "candidate_id": "4"}]
    ) == [(1, 2), (3, 4)]


@pytest.mark.parametrize(
    "raw, error",
    [
        (None, IncompleteSelection),
        ([], IncompleteSelection),
        (["1:2"], InvalidReference),
        ([{"positionId": 1}], InvalidReference),
        ([{"positionId": "x", "candidateId": 2}], InvalidReference),
    ],
)
def test_parse_selections_rejects_malformed_input(raw, error):
    with pytest.raises(error):
        parse_selections(raw)
