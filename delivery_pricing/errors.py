"""
Exceptions raised by the delivery pricing engine.

Input problems are ValueErrors so callers that already catch ValueError keep
working. Configuration problems are kept separate so an API layer can tell a
bad request apart from a misconfigured system.
"""


class PricingError(Exception):
    """Base class for all pricing engine errors."""


class ValidationError(PricingError, ValueError):
    """Calculation input is malformed or out of range."""


class ConfigurationError(PricingError):
    """Templates, rules or client configurations are missing or defective."""


class TemplateNotFound(ConfigurationError):
    pass


class TemplateInactive(ConfigurationError):
    pass


class ClientConfigNotFound(ConfigurationError):
    pass


class ClientConfigInactive(ConfigurationError):
    pass


class ClientConfigMismatch(ConfigurationError):
    """Client configuration belongs to a different template."""


class DuplicateRuleError(ConfigurationError):
    """Two rules on the same side of a template share a rule name."""


class InvalidTierTable(ConfigurationError):
    pass


class StoreTimeout(ConfigurationError):
    """A store load did not finish before the caller's deadline."""


def error_status(error: PricingError) -> tuple[int, str]:
    """HTTP status code and status label an entry point reports for an engine error."""
    if isinstance(error, ValidationError):
        return 400, "validation_failed"
    if isinstance(error, (TemplateNotFound, ClientConfigNotFound)):
        return 404, "not_found"
    if isinstance(error, StoreTimeout):
        return 504, "timeout"
    return 422, "configuration_error"
