"""Custom exception hierarchy for BossPilot."""


class BossPilotError(Exception):
    """Base exception for all BossPilot errors."""


class TransientUIError(BossPilotError):
    """Raised when an element does not appear within its retry budget."""


class NetworkCorrelationTimeout(TransientUIError):
    """Raised when the job-detail response is not observed after a card click."""


class ResponseParseError(BossPilotError):
    """Raised when an intercepted response body cannot be turned into a record."""


class AuthenticationError(BossPilotError):
    """Raised when login cannot be completed."""


class SessionExpiredError(AuthenticationError):
    """Raised when the login heuristic reports a logged-out session mid-run."""


class BrowserLaunchError(BossPilotError):
    """Raised when the browser fails to start."""


class PersistenceError(BossPilotError):
    """Raised when the candidate store cannot be read or written."""


class ConfigurationError(BossPilotError):
    """Raised when settings are invalid or required credentials are missing."""


class InvalidStatusTransition(BossPilotError, ValueError):
    """Raised when a delivery status would move backwards."""
