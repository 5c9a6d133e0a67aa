"""Bulk remediation of Intune managed devices and Entra ID groups."""

__version__ = "1.0.0"
