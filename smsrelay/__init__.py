"""SMS webhook relay service."""
