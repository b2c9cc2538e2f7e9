# Overview: All permission definitions organized by category.
# Each permission is defined as: (code, name, description, category)

from .categories import PermissionCategory


# -- BOOKINGS --

BOOKING_PERMISSIONS = [
    (
        "VIEW_BOOKINGS",
        "View Bookings",
        "List bookings and view booking details and return status",
        PermissionCategory.BOOKINGS,
    ),
    (
        "CREATE_BOOKING",
        "Create Booking",
        "Create bookings (reserves stock)",
        PermissionCategory.BOOKINGS,
    ),
    (
        "EDIT_BOOKING",
        "Edit Booking",
        "Change booking dates, notes, price and status",
        PermissionCategory.BOOKINGS,
    ),
    (
        "CANCEL_BOOKING",
        "Cancel Booking",
        "Cancel bookings (releases reserved stock)",
        PermissionCategory.BOOKINGS,
    ),
    (
        "PROCESS_RETURN",
        "Process Return",
        "Record returned and damaged quantities",
        PermissionCategory.BOOKINGS,
    ),
]


# -- STOCK --

STOCK_PERMISSIONS = [
    (
        "VIEW_STOCK",
        "View Stock",
        "View stock counters, movements and availability",
        PermissionCategory.STOCK,
    ),
    (
        "ADJUST_STOCK",
        "Adjust Stock",
        "Record manual stock movements and set total stock",
        PermissionCategory.STOCK,
    ),
]


PERMISSION_DEFINITIONS = BOOKING_PERMISSIONS + STOCK_PERMISSIONS
