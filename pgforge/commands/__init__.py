"""Click command groups registered by pgforge.cli."""
