# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Custom exception hierarchy for regwatch."""


class RegwatchError(Exception):
    """Base exception for all regwatch errors."""


class ConfigurationError(RegwatchError):
    """Invalid or missing configuration."""


class ValidationError(RegwatchError):
    """Malformed input rejected at the boundary."""


class ParseError(RegwatchError):
    """A cron expression could not be evaluated."""


class DispatchError(RegwatchError):
    """The work executor could not accept the work."""


class DuplicateJobError(RegwatchError):
    """Equivalent research work is already queued or running."""

    def __init__(self, states: list[str], data_types: list[str]) -> None:
        self.states = states
        self.data_types = data_types
        super().__init__(
            f"Research job already active for states={','.join(states)} "
            f"data_types={','.join(data_types)}"
        )


class StorageError(RegwatchError):
    """Database or storage operation failed."""


class InvalidTransitionError(RegwatchError):
    """A job status change violates the job lifecycle."""
