"""Bounded-concurrency batch registration against a remote control plane."""

__version__ = "0.1.0"
