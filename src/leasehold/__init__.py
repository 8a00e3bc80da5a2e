"""leasehold: lease-based leader election over a shared coordination store."""

__version__ = "0.1.0"
