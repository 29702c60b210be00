"""Core infrastructure: configuration, errors, storage and authorization."""
