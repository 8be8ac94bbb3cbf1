"""Server helpers."""
