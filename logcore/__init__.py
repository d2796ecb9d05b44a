"""Structured logging primitives: levels, entries, fields, JSON and console encoders, cores and write syncers."""

__version__ = "0.1.0"