"""Chain access, decoding and read-side services."""
