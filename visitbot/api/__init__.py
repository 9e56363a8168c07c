"""HTTP API layer for visitbot."""
