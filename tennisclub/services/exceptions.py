class ServiceError(Exception):
    """Error raised by the service layer and rendered as an HTTP response."""

    def __init__(self, message: str, status_code: int = 400) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
