"""Error taxonomy for the Care Fayre marketplace.

Every service raises a subclass of MarketplaceError. Validation and
authorization errors are raised before any write, so callers can show the
message directly to the user.
"""


class MarketplaceError(Exception):
    """Base exception for marketplace operations."""

    pass


class NotFoundError(MarketplaceError):
    """Raised when a referenced entity does not exist."""

    pass


class NotAuthorizedError(MarketplaceError):
    """Raised when the caller is the wrong party or role for an action."""

    pass


class NotRequestOwnerError(NotAuthorizedError):
    """Raised when someone other than the request creator acts on it."""

    pass


class NotAPartyError(NotAuthorizedError):
    """Raised when a non-party tries to sign a rate agreement."""

    pass


class WrongStatusError(MarketplaceError):
    """Raised when an entity is not in a valid source state for a transition."""

    pass


class RequestNotOpenError(WrongStatusError):
    """Raised when accepting a bid on a request that is no longer open."""

    pass


class RequestClosedError(WrongStatusError):
    """Raised when bidding on a request that is closed to new bids."""

    pass


class AlreadySignedError(WrongStatusError):
    """Raised when a party signs a rate agreement a second time."""

    pass


class DuplicateTimesheetError(WrongStatusError):
    """Raised when a job already has a live timesheet for the same week."""

    pass


class InvalidInputError(MarketplaceError):
    """Raised when a value fails validation."""

    pass


class InvalidRateError(InvalidInputError):
    """Raised for a missing or non-positive bid rate."""

    pass


class InvalidHoursError(InvalidInputError):
    """Raised for a missing or out-of-range hours value."""

    pass


class DependencyUnavailableError(MarketplaceError):
    """Raised by external collaborators (email, registry) when they fail.

    Services never let this escape a primary transaction.
    """

    pass
