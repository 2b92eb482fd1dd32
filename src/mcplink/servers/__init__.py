"""Ready-made servers."""
