"""Snowcap SIGCOMM 2021 evaluation harness."""

__version__ = "1.0.0"
