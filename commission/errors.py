# commission/errors.py


class PostbackError(Exception):
    """Base class for errors raised by the commission engine."""


class HouseConfigurationError(PostbackError):
    """A partner house was registered with invalid commission settings."""


class AffiliateRegistrationError(PostbackError):
    """An affiliate or affiliate link could not be created."""
