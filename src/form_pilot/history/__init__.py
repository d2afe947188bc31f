"""Stores that keep each session's turns for transcript reads."""
