"""Discord operator bridge for Roblox experiences."""

__version__ = "0.1.0"
