"""Decision policy implementations."""
