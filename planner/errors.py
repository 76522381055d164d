"""Errors raised by allocation-state mutations.

Every error is raised before any field is touched, so a caught error always
leaves the state exactly as it was.  An infeasible plan is not an error: the
feasibility validator returns a report instead.
"""


class PlannerError(Exception):
    """Base class for recoverable planning errors."""


class InvalidIndex(PlannerError):
    """The validator reference is outside the combined validator range."""


class InvalidOperation(PlannerError):
    """The mutation is not allowed for the referenced validator."""


class DuplicateValidator(PlannerError):
    """A validator with the same identity is already part of the state."""
