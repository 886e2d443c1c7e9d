"""Sonic — conversational assistant for Luma events and guest lists."""

__version__ = "0.3.0"
