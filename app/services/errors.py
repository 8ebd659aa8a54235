"""
Error taxonomy for live match operations.

Every error carries a message meant to be shown to the operator verbatim.
"""


class LiveMatchError(Exception):
    """Base class for live match errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(LiveMatchError):
    """Malformed input, rejected before any mutation."""


class NotFoundError(LiveMatchError):
    """Referenced fixture, event or player does not exist."""


class InvalidStateTransition(LiveMatchError):
    """Operation not allowed in the fixture's current state."""


class PartialFailure(LiveMatchError):
    """
    First half of an action was persisted, the second half was not.

    Never retried automatically: re-running the action would apply the
    completed half twice. An operator has to check and correct the fixture.
    """

    def __init__(
        self,
        message: str,
        *,
        fixture_id: int,
        completed_step: str,
        failed_step: str,
        event_id: int | None = None,
    ):
        super().__init__(message)
        self.fixture_id = fixture_id
        self.completed_step = completed_step
        self.failed_step = failed_step
        self.event_id = event_id
