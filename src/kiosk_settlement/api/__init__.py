"""HTTP API for the kiosk settlement service."""
