"""Stack-based instruction executor for a small dynamic scripting language."""

__version__ = "0.1.0"