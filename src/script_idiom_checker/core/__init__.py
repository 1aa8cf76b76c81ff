"""Core models, exceptions and the checking pipeline."""
