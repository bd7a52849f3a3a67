from enum import StrEnum


class BookingScope(StrEnum):
    # Customer scopes
    READ = "bookings:read"  # view own bookings
    WRITE = "bookings:write"  # create a booking, preview promo codes

    # Provider scopes
    MANAGE = "bookings:manage"  # view assigned bookings and own earnings

    # Admin scopes
    ADMIN = "admin:bookings"
    ADMIN_READ = "admin:bookings:read"
    ADMIN_PROMO_CODES = "admin:promo-codes"
    ADMIN_ANALYTICS = "admin:analytics"


BOOKING_SCOPE_DESCRIPTIONS: dict[str, str] = {
    BookingScope.READ: "View your own bookings.",
    BookingScope.WRITE: "Book a service and preview promo-code discounts.",
    BookingScope.MANAGE: "View bookings assigned to you and your earnings.",
    BookingScope.ADMIN_READ: "Read any booking regardless of owner (admin).",
    BookingScope.ADMIN_PROMO_CODES: "Create, list and (de)activate promo codes (admin).",
    BookingScope.ADMIN_ANALYTICS: "View platform revenue and commission (admin).",
}
