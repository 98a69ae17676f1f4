from __future__ import annotations

SETUP_HINT = "Please run the setup utility first:\n  mailer setup"


class MailerError(Exception):
    """Base class for every error the CLI reports to the operator."""


class ValidationError(MailerError):
    pass


class ResourceError(MailerError):
    """A local body or attachment file is missing or unreadable."""


class ConfigurationMissingError(MailerError):
    pass


class MissingCredentialsError(ConfigurationMissingError):
    def __init__(self, missing_keys: list[str]):
        self.missing_keys = list(missing_keys)
        super().__init__(
            f"Missing required configuration keys: {', '.join(self.missing_keys)}\n{SETUP_HINT}"
        )


class TransportError(MailerError):
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class StoreError(MailerError):
    pass


class StoreInitError(StoreError):
    pass


class StoreReadError(StoreError):
    pass


class StoreWriteError(StoreError):
    pass
