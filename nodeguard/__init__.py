"""nodeguard: validating admission webhooks guarding node role labels."""

__version__ = "0.1.0"
