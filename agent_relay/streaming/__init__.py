"""Event stream parsing."""
