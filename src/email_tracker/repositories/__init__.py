"""Session store implementations."""
