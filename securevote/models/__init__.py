from securevote.models.admin import Admin
from securevote.models.ballot import Ballot
from securevote.models.candidate import Candidate
from securevote.models.election import Election
from securevote.models.position import Position
from securevote.models.voter import Voter
from securevote.models.voting_session import VotingSession

__all__ = [
    "Admin",
    "Voter",
    "Election",
    "Position",
    "Candidate",
    "Ballot",
    "VotingSession",
]
