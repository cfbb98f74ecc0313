"""Shared helpers: rate gate and logging setup."""
