"""Identity correlation engine."""
