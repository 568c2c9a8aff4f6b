"""npm version resolution."""
