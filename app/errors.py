from fastapi import status


class BookingError(Exception):
    """Base class for lifecycle failures reported back to the caller."""

    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(BookingError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class NotFoundError(BookingError):
    status_code = status.HTTP_404_NOT_FOUND


class UnauthorizedError(BookingError):
    status_code = status.HTTP_403_FORBIDDEN


class InvalidStateError(BookingError):
    status_code = status.HTTP_400_BAD_REQUEST


class NotReadyError(BookingError):
    """Settlement requested before payment and both confirmations are in."""

    status_code = status.HTTP_409_CONFLICT
