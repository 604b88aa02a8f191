"""Version information for insurance_market."""

__version__ = "0.1.0"
