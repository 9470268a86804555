from enum import StrEnum


class BookingScope(StrEnum):
    # Customer scopes
    READ = "bookings:read"  # view own booking history
    WRITE = "bookings:write"  # create a booking
    CANCEL = "bookings:cancel"  # cancel own booking
    CONFIRM = "bookings:confirm"  # confirm service delivery (either side)

    # Model scopes
    MANAGE = "bookings:manage"  # accept / reject bookings, see own booking list
    EARNINGS = "bookings:earnings"  # view own earnings


BOOKING_SCOPE_DESCRIPTIONS: dict[str, str] = {
    BookingScope.READ: "View your own booking history.",
    BookingScope.WRITE: "Book a model.",
    BookingScope.CANCEL: "Cancel your own pending or accepted booking.",
    BookingScope.CONFIRM: "Confirm that a booked service took place.",
    BookingScope.MANAGE: "Accept or reject bookings made with you.",
    BookingScope.EARNINGS: "View your released earnings.",
}
