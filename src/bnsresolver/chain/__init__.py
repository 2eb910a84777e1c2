"""Chain-facing helpers (height oracle)."""
