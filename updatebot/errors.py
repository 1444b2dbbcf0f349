"""Error types raised by the update bot."""


class UpdateBotError(Exception):
    """Base class for all update bot errors."""


class ConfigError(UpdateBotError):
    """A required configuration value is unset or invalid."""


class AuthError(UpdateBotError):
    """A credentialed call targets a host without a usable token."""

    def __init__(self, message: str, host: str = ""):
        super().__init__(message)
        self.host = host


class ForgeError(UpdateBotError):
    """The forge (or another remote host) rejected or failed a request."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class RateLimitExceeded(UpdateBotError):
    """Admission was deferred by the rate limiter."""

    def __init__(self, admission):
        super().__init__(
            f"Rate limit reached ({admission.reason}), retry in {admission.reset_seconds}s"
        )
        self.admission = admission
