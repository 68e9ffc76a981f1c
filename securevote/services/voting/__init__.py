from securevote.services.voting.ballot import (
    cast_vote,
    has_voted,
    parse_selections,
    reconcile_counters,
)
from securevote.services.voting.errors import (
    AlreadyVoted,
    BallotError,
    ElectionNotActive,
    IdentityNotVerified,
    IncompleteSelection,
    InvalidReference,
    StoreFailure,
)
from securevote.services.voting.results import (
    compute_results,
    dashboard_stats,
    election_overview,
    flatten_results,
)

__all__ = [
    "cast_vote",
    "has_voted",
    "parse_selections",
    "reconcile_counters",
    "compute_results",
    "dashboard_stats",
    "election_overview",
    "flatten_results",
    "BallotError",
    "AlreadyVoted",
    "IncompleteSelection",
    "InvalidReference",
    "ElectionNotActive",
    "IdentityNotVerified",
    "StoreFailure",
]
