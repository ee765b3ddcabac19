"""Error taxonomy shared by the store, cache, generator and resolution service.

Every error carries the HTTP status the web layer answers with, so routes do
not need their own mapping tables.
"""


class ShortenerError(Exception):
    status_code: int = 500
    detail: str = "Internal error"

    def __init__(self, detail: str | None = None):
        super().__init__(detail or self.detail)
        self.detail = detail or self.detail


class InvalidURLError(ShortenerError):
    status_code = 400
    detail = "Destination must be an http or https URL"


class InvalidAliasFormatError(ShortenerError):
    status_code = 400
    detail = "Custom alias must be 3-20 alphanumeric characters"


class AliasExistsError(ShortenerError):
    status_code = 409
    detail = "Alias already in use"


class GenerationExhaustedError(ShortenerError):
    status_code = 503
    detail = "Could not generate unique code"


class NotFoundError(ShortenerError):
    status_code = 404
    detail = "Link not found"


class GoneError(ShortenerError):
    status_code = 410
    detail = "Link expired or disabled"


class UnauthorizedError(ShortenerError):
    status_code = 401
    detail = "Not authorized"


class StoreUnavailableError(ShortenerError):
    status_code = 503
    detail = "Store unavailable"


class CodeExistsError(ShortenerError):
    """Unique index on the short code rejected a write."""

    status_code = 409
    detail = "Short code already exists"
