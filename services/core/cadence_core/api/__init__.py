"""HTTP API for Cadence Core."""
