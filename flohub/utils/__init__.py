"""Shared utilities for FloHub."""
