class BallotError(Exception):
    """Base class for every way a ballot submission can be refused."""

    kind = "ballot_error"
    message = "Failed to cast vote"
    retryable = False

    def __init__(self, detail=None):
        super().__init__(detail or self.message)
        self.detail = detail


class AlreadyVoted(BallotError):
    kind = "already_voted"
    message = "already voted"


class IncompleteSelection(BallotError):
    kind = "incomplete_selection"
    message = "Selections do not cover every position"


class InvalidReference(BallotError):
    kind = "invalid_reference"
    message = "Unknown election, position or candidate"


class ElectionNotActive(BallotError):
    kind = "election_not_active"
    message = "This election is not accepting votes"


class IdentityNotVerified(BallotError):
    kind = "identity_not_verified"
    message = "Identity verification failed"


class StoreFailure(BallotError):
    """The database could not complete the write; nothing was committed."""

    kind = "store_failure"
    message = "Vote could not be recorded, please try again"
    retryable = True
