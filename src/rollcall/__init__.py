"""Self-verifying file manifests ("rolls") and the transfer tooling built on them."""

__version__ = "0.1.0"

__all__ = ["__version__"]
