class FcnError(Exception):
    """Base class for errors surfaced by the tracker."""


class ImportParseError(FcnError):
    """Import content could not be turned into positions; nothing was committed."""


class FetchExhaustedError(FcnError):
    """Every fetch strategy failed for a remote source."""

    def __init__(self, message: str, attempts: list[dict] | None = None):
        super().__init__(message)
        self.attempts = attempts or []


class AuthWallError(FetchExhaustedError):
    """The remote source answered with a sign-in page instead of data."""


class ShareCodecError(FcnError):
    """A share string or exported file could not be decoded."""


class StoreError(FcnError):
    """A store operation would break a portfolio invariant."""


class NotFoundError(StoreError):
    pass
