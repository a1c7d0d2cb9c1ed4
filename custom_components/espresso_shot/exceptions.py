"""Custom exceptions for the Espresso Shot integration."""


class EspressoShotError(Exception):
    """Base class for exceptions raised by the Espresso Shot integration."""


class ScaleConnectionError(EspressoShotError):
    """Raised when the link to the scale cannot be established or is lost."""


class ScaleProtocolError(EspressoShotError):
    """Raised when the scale does not expose the expected service layout."""


class ScaleCommandError(EspressoShotError):
    """Raised when there's an error sending a command to the scale."""
