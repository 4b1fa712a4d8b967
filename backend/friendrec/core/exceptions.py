"""Error taxonomy for the recommendation core."""


class RecommendError(Exception):
    """Base class for recommendation errors."""


class StoreUnavailable(RecommendError):
    """A Redis-backed store could not be read or written.

    Raised by the store adapters so callers never handle ``redis`` exceptions
    directly. The engine treats it as a degradation, not a failure.
    """

    def __init__(self, store: str, operation: str, cause: Exception | None = None):
        self.store = store
        self.operation = operation
        super().__init__(f"{store} unavailable during {operation}: {cause}")


class InvalidRequester(RecommendError):
    """The requesting member does not exist."""

    def __init__(self, member_id: int):
        self.member_id = member_id
        super().__init__(f"Member {member_id} does not exist")


class BlacklistCheckFailed(RecommendError):
    """Blacklist filtering could not be verified; results must not be returned."""

    def __init__(self, requester_id: int, cause: Exception | None = None):
        self.requester_id = requester_id
        super().__init__(f"Blacklist check failed for member {requester_id}: {cause}")
