"""Utility modules for logging, paths and errors."""
