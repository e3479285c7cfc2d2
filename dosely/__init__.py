"""Dosely: GLP-1 dose and weight tracking core."""

__version__ = "0.1.0"
