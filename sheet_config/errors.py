"""
Error taxonomy for the config service.
The HTTP layer maps these to status codes; the core only raises them.
"""


class SheetConfigError(Exception):
    """Base class for all errors raised by the config service."""


class FetchError(SheetConfigError):
    """A namespace could not be fetched from the remote sheet."""


class CredentialError(FetchError):
    """No usable token: missing, unreadable, expired, or could not be persisted."""


class AuthError(FetchError):
    """The remote source rejected the access token."""


class TransportError(FetchError):
    """Network or upstream failure while talking to the remote source."""


class MalformedResponseError(FetchError):
    """The remote source answered with an unexpected shape."""


class KeyNotFoundError(SheetConfigError):
    """The namespace was fetched but does not contain the requested key."""

    def __init__(self, namespace: str, key: str):
        super().__init__(f"key {key} is not in sheet {namespace}")
        self.namespace = namespace
        self.key = key
