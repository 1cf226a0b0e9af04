"""Version information for atgsm."""

__version__ = "0.1.0"
