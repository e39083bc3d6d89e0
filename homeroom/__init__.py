"""Homeroom — family homework focus tracker."""

__version__ = "0.1.0"
