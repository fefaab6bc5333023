"""Simulated short-duration up/down rounds over live crypto prices."""

__version__ = "0.1.0"
