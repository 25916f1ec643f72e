"""Remote code-execution sandbox client."""
