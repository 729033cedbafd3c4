"""Exceptions raised to callers of the betting shop core."""


class BetshopError(Exception):
    """Base class for betting shop errors."""


class ValidationError(BetshopError, ValueError):
    """A request was rejected before any state was touched."""


class TicketNotFound(ValidationError):
    """The ticket does not exist or belongs to another user."""


class TicketNotOpen(ValidationError):
    """The ticket has already been settled."""
