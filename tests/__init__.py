"""Tests for the sandbox sessions service."""
