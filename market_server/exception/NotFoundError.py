class NotFoundError(Exception):
    """Raised when a requested message or conversation does not exist."""
    def __init__(self, message):
        super().__init__(message)
