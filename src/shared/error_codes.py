# src/shared/error_codes.py
# Central mapping that aligns with the error contract consumed by route handlers.
# Keep keys stable: callers map `code` to responses.
ERROR_CODES = {
    # ─── Validation & Requests ──────────────────────────────────────────────
    "validation_error": {
        "http": 400,
        "message": "Validation failed for one or more fields."
    },
    "invalid_store_id": {
        "http": 400,
        "message": "A valid store identifier is required."
    },
    "invalid_status": {
        "http": 422,
        "message": "Unknown status value."
    },

    # ─── Resources ─────────────────────────────────────────────────────────
    "not_found": {
        "http": 404,
        "message": "Resource not found."
    },
    "config_not_found": {
        "http": 404,
        "message": "No active database configuration found for this store."
    },

    # ─── Tenant backends ───────────────────────────────────────────────────
    "unsupported_backend_type": {
        "http": 422,
        "message": "Unsupported database type."
    },
    "unsupported_operation": {
        "http": 400,
        "message": "Operation not supported by this database type."
    },
    "connection_error": {
        "http": 502,
        "message": "Failed to connect to the store database."
    },

    # ─── Server ────────────────────────────────────────────────────────────
    "crypto_error": {
        "http": 500,
        "message": "Encryption or decryption failed."
    },
    "internal_error": {
        "http": 500,
        "message": "Internal server error."
    },
}
