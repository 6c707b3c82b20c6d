"""WebBot — conversational website editing agent."""

__version__ = "0.1.0"
