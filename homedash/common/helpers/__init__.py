"""Generic helpers shared by server and models."""
