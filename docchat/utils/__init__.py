"""Shared utilities: error hierarchy and structured logging."""
