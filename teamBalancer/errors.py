"""Exceptions raised by the team formation engine."""


class BalancerError(Exception):
    """Base class for every error the engine raises."""


class InsufficientRoster(BalancerError):
    """The roster cannot fill the configured teams. Raised before any assignment."""

    def __init__(self, available, required):
        self.available = available
        self.required = required
        super().__init__(
            f"Roster has {available} competitors but {required} are required"
        )


class CapacityInvariantViolation(BalancerError):
    """A placement would push a team past team_size, or a pool cannot fit."""

    def __init__(self, message, team_state=None):
        self.team_state = team_state or []
        super().__init__(message)


class ExternalLookupFailure(BalancerError):
    """An upstream evidence source could not be reached or returned junk."""

    def __init__(self, source, message):
        self.source = source
        super().__init__(f"{source}: {message}")


class RunCancelled(BalancerError):
    """The caller asked the run to stop."""


def raise_if_cancelled(should_cancel, where):
    if should_cancel is not None and should_cancel():
        raise RunCancelled(f"Run cancelled during {where}")
