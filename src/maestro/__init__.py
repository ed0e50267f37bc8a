"""Maestro: workflow orchestration for specialist coding agents."""

__version__ = "0.1.0"
