# Overview: Default role to permission mapping.

"""
Roles are plain strings on User.role. The mapping below is the single source
of truth for what each role may do.
"""

DEFAULT_ROLE_PERMISSIONS = {
    "admin": [
        # Admin gets ALL permissions
        "VIEW_BOOKINGS",
        "CREATE_BOOKING",
        "EDIT_BOOKING",
        "CANCEL_BOOKING",
        "PROCESS_RETURN",
        "VIEW_STOCK",
        "ADJUST_STOCK",
    ],
    "manager": [
        "VIEW_BOOKINGS",
        "CREATE_BOOKING",
        "EDIT_BOOKING",
        "CANCEL_BOOKING",
        "PROCESS_RETURN",
        "VIEW_STOCK",
        "ADJUST_STOCK",
    ],
    "operator": [
        # Counter staff: book and receive returns, no manual stock changes
        "VIEW_BOOKINGS",
        "CREATE_BOOKING",
        "PROCESS_RETURN",
        "VIEW_STOCK",
    ],
}
