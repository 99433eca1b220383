"""Offline inspection of OpenShift must-gather directories."""

__version__ = "0.1.0"