"""Adapters connecting the core to document stores and logging frameworks."""
