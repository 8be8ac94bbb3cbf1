"""Home dashboard server aggregating a multi-room audio system."""
