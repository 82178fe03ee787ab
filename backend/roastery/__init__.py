"""Roastery back office: roasting, packaging, inventory and POS."""

__version__ = "0.1.0"
