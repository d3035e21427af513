"""Error taxonomy for record and attachment operations.

Each error is an ``HTTPException`` so it can be raised where the problem is
detected and rendered by the app-level handler without extra translation.
"""

from fastapi import HTTPException


class ValidationError(HTTPException):
    def __init__(self, detail: str = "Invalid submission"):
        super().__init__(status_code=400, detail=detail)


class NotFound(HTTPException):
    def __init__(self, detail: str = "Not found"):
        super().__init__(status_code=404, detail=detail)


class BadRequest(HTTPException):
    def __init__(self, detail: str = "Bad request"):
        super().__init__(status_code=400, detail=detail)


class PayloadTooLarge(HTTPException):
    def __init__(self, detail: str = "Payload too large"):
        super().__init__(status_code=413, detail=detail)


class IOFailure(HTTPException):
    """Storage or database collaborator failure; the client only sees a generic 500."""

    def __init__(self, reason: str = "storage failure"):
        super().__init__(status_code=500, detail="Storage failure")
        self.reason = reason
