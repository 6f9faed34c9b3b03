"""NDT scoring building blocks and a shared-memory vital-counter watchdog."""

__version__ = "0.1.0"
__all__ = ["__version__"]