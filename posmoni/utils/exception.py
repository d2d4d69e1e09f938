class ConfigurationError(ValueError):
    """Required configuration is missing or invalid. Raised before any subsystem starts."""


class ParseError(ValueError):
    """A single field of a response could not be parsed."""
