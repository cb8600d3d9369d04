"""Architect: a tool-using agent engine with plan, react and confirmation phases."""

__version__ = "0.1.0"
