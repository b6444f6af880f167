"""HR records service with background employee creation and CSV import."""

__version__ = "1.0.0"
