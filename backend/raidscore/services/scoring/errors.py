"""Failures raised by the scoring engine.

Every error is raised before an event is produced, so a caller that catches
one can be sure the log and the raid machine are unchanged.
"""


class ScoringError(Exception):
    """Base class for recoverable scoring failures."""


class InvalidInput(ScoringError):
    """The scorer's declaration breaks a rule (raider already out, bad touch count...)."""


class StaleReference(ScoringError):
    """A player id that is not part of the current roster snapshot."""


class IllegalTransition(ScoringError):
    """The requested operation is not valid in the current raid state."""


class RedoConflict(ScoringError):
    """The log moved past the undone point, so the undone events cannot be replayed."""


class MatchNotLive(ScoringError):
    """The match is not accepting scoring actions."""
