"""
Error taxonomy for the scheduling engine.

Only three failure modes are surfaced to callers:
- InvalidInput: a performance score outside 0-5
- NotFound: a learner without a profile
- InvalidState: an operation on a closed or unknown session

Missing or malformed biometric signals are never errors; they degrade
to neutral values (see src.adaptive.brain_state).
"""


class CadenceError(Exception):
    """Base class for engine errors."""
    pass


class InvalidInput(CadenceError):
    """Raised when an argument is outside its accepted range."""
    pass


class NotFound(CadenceError):
    """Raised when a learner profile does not exist."""

    def __init__(self, user_id: str):
        super().__init__(f"No profile for learner {user_id!r}")
        self.user_id = user_id


class InvalidState(CadenceError):
    """Raised when a session is unknown or already closed."""

    def __init__(self, session_id: str, reason: str = "unknown session"):
        super().__init__(f"Session {session_id!r}: {reason}")
        self.session_id = session_id
        self.reason = reason
