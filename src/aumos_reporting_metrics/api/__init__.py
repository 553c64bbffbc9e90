"""HTTP API for reporting metrics."""
