"""MedClaim AI: submit and track medical insurance claims."""

__version__ = "0.1.0"
