class MovieNightError(Exception):
    """
    Base for every failure the request layer turns into a
    {"success": false, "error": ...} response.
    """
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(MovieNightError):
    status_code = 400


class NotFoundError(MovieNightError):
    """
    Raised both for unknown ids and for ids whose status makes the
    operation inapplicable (voting on / deleting a winner).
    """
    status_code = 404


class ConflictError(MovieNightError):
    status_code = 409


class AlreadyWonError(ConflictError):
    pass


class UpstreamError(MovieNightError):
    pass


class CatalogTimeoutError(UpstreamError):
    pass


class CatalogCredentialsError(UpstreamError):
    pass


class StorageError(MovieNightError):
    pass
