"""Small shared helpers (sizes, telemetry)."""
