"""worldgen test suite."""
