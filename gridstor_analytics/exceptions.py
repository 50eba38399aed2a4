class GridStorError(Exception):
    """Base exception for GridStor Analytics errors."""

    status_code = 500

    def __init__(self, message=None, code=None, details=None):
        """Initialize the exception.

        Args:
            message: Error message
            code: Error code
            details: Additional error details
        """
        self.message = message or "An error occurred in GridStor Analytics"
        self.code = code
        self.details = details
        super().__init__(self.message)

    def __str__(self):
        if self.code:
            return f"[{self.code}] {self.message}"
        return self.message

    def to_dict(self):
        """Convert the exception to a response envelope."""
        error_dict = {
            "success": False,
            "error": self.message,
        }

        if self.code:
            error_dict["code"] = self.code

        if self.details:
            error_dict["details"] = self.details

        return error_dict


class InvalidRequestError(GridStorError):
    """Raised when a request is malformed or fails validation."""

    status_code = 400

    def __init__(self, message=None, code=None, details=None):
        message = message or "Invalid request"
        super().__init__(message, code, details)


class NotFoundError(GridStorError):
    """Raised when a referenced record does not exist."""

    status_code = 404

    def __init__(self, message=None, code=None, details=None):
        message = message or "Not found"
        super().__init__(message, code, details)


class ConflictError(GridStorError):
    """Raised when a write would duplicate an existing record."""

    status_code = 409

    def __init__(self, message=None, code=None, details=None):
        message = message or "Conflict"
        super().__init__(message, code, details)
