# src/shared/error_codes.py
# Central mapping that aligns with the API error contract.
# Keep keys stable: web and mobile clients switch on these.
ERROR_CODES = {
    # ─── Validation & Requests ──────────────────────────────────────────────
    "validation_error": {
        "http": 422,
        "message": "Validation failed for one or more fields."
    },
    "invalid_coordinate": {
        "http": 422,
        "message": "Latitude must be within [-90, 90] and longitude within [-180, 180]."
    },
    "invalid_quantity": {
        "http": 422,
        "message": "Quantity is out of the allowed range."
    },

    # ─── Actors ────────────────────────────────────────────────────────────
    "unauthorized": {
        "http": 401,
        "message": "Actor headers are missing or malformed."
    },
    "forbidden": {
        "http": 403,
        "message": "You are not allowed to perform this action."
    },

    # ─── Lookups ───────────────────────────────────────────────────────────
    "not_found": {
        "http": 404,
        "message": "Resource not found."
    },

    # ─── Lifecycle & Lost Races ────────────────────────────────────────────
    "conflict": {
        "http": 409,
        "message": "Conflict with existing resource."
    },
    "invalid_transition": {
        "http": 409,
        "message": "The requested status change is not allowed from the current status."
    },
    "already_accepted": {
        "http": 409,
        "message": "This blood request has already been accepted."
    },
    "slot_full": {
        "http": 409,
        "message": "This slot is no longer available."
    },
    "already_booked": {
        "http": 409,
        "message": "You already have a booking for this slot."
    },
    "insufficient_stock": {
        "http": 409,
        "message": "Not enough units in stock."
    },

    # ─── Internal ──────────────────────────────────────────────────────────
    "invariant_violation": {
        "http": 500,
        "message": "An internal consistency check failed."
    },
    "internal_error": {
        "http": 500,
        "message": "An unexpected error occurred. Please try again later."
    },
}
