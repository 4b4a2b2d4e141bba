"""Domain services for Cadence."""
