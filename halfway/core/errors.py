class MatchEngineError(Exception):
    """Base class for every error the matching engine reports to callers."""
    pass


class InvalidCoordinate(MatchEngineError, ValueError):
    """Latitude/longitude outside the valid range (or not a number)."""
    pass


class Unauthorized(MatchEngineError):
    """The acting user is not allowed to perform this action on the match."""
    pass


class MatchExpired(MatchEngineError):
    pass


class MatchNotFound(MatchEngineError, KeyError):
    def __str__(self) -> str:
        # KeyError quotes its argument; keep the plain message
        return str(self.args[0]) if self.args else "match not found"


class InvalidStateTransition(MatchEngineError):
    pass


class InvalidMatchRequest(MatchEngineError, ValueError):
    pass


class TargetUnavailable(MatchEngineError):
    """A party of a new request has no fresh online presence."""
    pass


class CandidateNotFound(MatchEngineError, KeyError):
    def __str__(self) -> str:
        return str(self.args[0]) if self.args else "candidate not found"


class DegradedCandidates(MatchEngineError):
    """
    Non-fatal: place search was unavailable, failed or timed out.
    Carried on CandidateSet.degraded; never raised out of the generator.
    """
    pass
