"""membank: project-aware memory bank for stateless tool-calling clients."""

__version__ = "0.3.0"
