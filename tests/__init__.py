"""Relay test suite."""
