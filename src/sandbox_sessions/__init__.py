"""Sandbox sessions service: agent sessions bound to remote dev sandboxes."""

__version__ = "0.1.0"
