"""Shared models and helpers."""
