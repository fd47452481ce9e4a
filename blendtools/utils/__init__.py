"""Small helpers shared by the command wrappers."""
