class MatchingError(Exception):
    """Base class for matching core errors."""


class PersistenceError(MatchingError):
    """A store read or write failed (network, constraint violation)."""


class ProvisionError(MatchingError):
    """Conversation or participant creation failed."""


class StaleMatchRace(MatchingError):
    """A concurrent matcher claimed one of the two queue entries first."""


class InvalidTransition(MatchingError):
    """A command is not allowed from the session's current state."""

    def __init__(self, action: str, state: str):
        super().__init__(f"Cannot {action} while {state}")
        self.action = action
        self.state = state
