"""Provision an SSH key secret on AWS and upload its value."""

__version__ = "0.1.0"
