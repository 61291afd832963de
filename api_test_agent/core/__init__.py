"""Core infrastructure: configuration, logging, errors, storage and approvals."""
