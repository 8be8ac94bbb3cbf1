"""Package with all core controllers."""
