"""Shared utilities for credproxy (file helpers, logging setup)."""
