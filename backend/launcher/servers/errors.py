class NetworkError(Exception):
    """The server directory could not be fetched or its response could not be decoded."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class CacheError(Exception):
    """Reading or writing the server cache file failed."""
