"""
Engine Errors

Error taxonomy shared by every engine component.

Exhausted scaffolding is deliberately NOT an exception here: the scaffolding
selector reports it as a flag on its result (see scaffolding.HintResult).
"""


class TutoringEngineError(Exception):
    """Base class for all engine errors."""


class ConfigurationError(TutoringEngineError):
    """Invalid setup: empty question list, unknown topic/difficulty value, bad config.

    Fatal to the operation that raised it. Retrying without fixing the input
    will fail the same way.
    """


class OutOfRangeError(TutoringEngineError):
    """An answer or attempt number that does not fit the current session.

    Raised before any mutation, so the session is left unchanged.
    """


class InvalidTransitionError(TutoringEngineError):
    """A session transition that the state machine does not allow."""


class RepositoryError(TutoringEngineError):
    """A persistence backend failed to load or save state."""
