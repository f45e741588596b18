"""Command line and support library for signalling and configuring a transparent proxy daemon."""

__version__ = "0.1.0"