"""Storage infrastructure: engine, units of work and repositories."""
