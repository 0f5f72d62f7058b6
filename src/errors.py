"""Exceptions that end a scenario run.

Missing optional controls never raise; these are reserved for the cases the
run cannot continue from.
"""


class ScenarioError(Exception):
    """Base class for failures reported in the outcome's error field."""


class ControlNotFound(ScenarioError):
    """A control required to create a document could not be located."""

    def __init__(self, target: str, tried: int = 0):
        self.target = target
        self.tried = tried
        detail = f" after {tried} selector(s)" if tried else ""
        super().__init__(f"{target} not found{detail}")


class CollaboratorFault(ScenarioError):
    """The page or browser went away underneath the scenario."""
