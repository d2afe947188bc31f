"""Tool catalog exposed to the model."""
