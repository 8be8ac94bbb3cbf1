"""Server specific models."""
