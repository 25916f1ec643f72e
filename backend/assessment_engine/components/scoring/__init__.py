"""Answer normalization and score computation."""
