"""Add-on lifecycle manager: install, update, toggle and remove game add-ons."""

__version__ = "0.1.0"
