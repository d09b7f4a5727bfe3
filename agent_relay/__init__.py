"""Agent relay: On-Behalf-Of bridge between a browser SPA and a Copilot Studio agent."""

__version__ = "0.1.0"
