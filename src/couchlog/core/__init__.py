"""Core domain: models, ports and store-independent logic."""
