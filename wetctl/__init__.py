"""wetctl — multi-environment deployment orchestrator for the wetfish services."""

__version__ = "0.1.0"
