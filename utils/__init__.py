"""Utility helpers - geometry, validators, and file operations."""
