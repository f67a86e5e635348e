"""Hark: a voice-driven search agent."""

__version__ = "0.1.0"
