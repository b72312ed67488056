from contextlib import contextmanager

from azure.core.exceptions import ClientAuthenticationError, HttpResponseError

# The service answers 401 for a missing key and 403 for a wrong one
AUTH_STATUS_CODES = (401, 403)


class KbQueryError(Exception):
    """Base class for errors raised by kbquery."""


class ConfigError(KbQueryError):
    pass


class AuthError(KbQueryError):
    """The search service rejected the admin credential."""


class ConflictError(KbQueryError):
    """The service refused to create, replace or delete a resource."""


class RateLimited(KbQueryError):
    """The service throttled a request (HTTP 429)."""


class InvalidUserChoice(KbQueryError):
    def __init__(self, choice):
        super().__init__(f"Invalid choice: {choice!r}")
        self.choice = choice


def is_auth_failure(error: HttpResponseError) -> bool:
    return (
        isinstance(error, ClientAuthenticationError)
        or error.status_code in AUTH_STATUS_CODES
    )


@contextmanager
def rejected_as_conflict(action):
    """Translate a remote rejection of ``action`` into ConflictError."""
    try:
        yield
    except HttpResponseError as e:
        if is_auth_failure(e):
            raise AuthError(f"{action}: {e.message}") from e
        raise ConflictError(f"{action}: {e.message}") from e
