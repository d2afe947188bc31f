"""LLM provider clients."""
