"""vmstarter test suite."""
