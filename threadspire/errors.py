"""
Typed errors raised by the service layer.

Each error carries the HTTP status it maps to; a single exception handler in
``threadspire.main`` renders them as ``{"error": message}``.

  ThreadSpireError (500)
  ├── ValidationError      400  bad input: empty title, too many tags, …
  ├── AuthenticationError  401  no viewer, bad credentials, expired token
  ├── AccessDeniedError    403  private thread, not the owner
  ├── NotFoundError        404
  ├── ConflictError        409  duplicate email, constraint violation
  └── RateLimitError       429
"""


class ThreadSpireError(Exception):
    status_code = 500

    def __init__(self, message: str = "Internal server error"):
        super().__init__(message)
        self.message = message


class ValidationError(ThreadSpireError):
    status_code = 400


class AuthenticationError(ThreadSpireError):
    status_code = 401

    def __init__(self, message: str = "User not authenticated"):
        super().__init__(message)


class AccessDeniedError(ThreadSpireError):
    status_code = 403


class NotFoundError(ThreadSpireError):
    status_code = 404

    def __init__(self, what: str = "Resource"):
        super().__init__(f"{what} not found")


class ConflictError(ThreadSpireError):
    status_code = 409


class RateLimitError(ThreadSpireError):
    status_code = 429

    def __init__(self, message: str = "Too many requests"):
        super().__init__(message)
