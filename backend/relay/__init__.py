"""Photo Relay backend package."""
