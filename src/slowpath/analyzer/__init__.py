"""Static analysis core: context, traversal, suppression, severity, engine."""
