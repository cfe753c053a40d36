"""
HTTP errors raised by the dashboard API
"""

from fastapi import HTTPException, status


class NotFoundError(HTTPException):
    """Unknown feed or resource"""

    def __init__(self, detail: str = "Feed not found"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class ConflictError(HTTPException):
    """The request cannot be served in the current feed or stream state"""

    def __init__(self, detail: str = "Feed is not in a refreshable state"):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)
