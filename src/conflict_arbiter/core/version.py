"""Version information for Conflict Arbiter."""

__version__ = "1.0.0"
