"""Configuration, errors and the pipeline context."""
