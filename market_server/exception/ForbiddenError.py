class ForbiddenError(Exception):
    """Raised when an authenticated user may not act on a resource."""
    def __init__(self, message):
        super().__init__(message)
