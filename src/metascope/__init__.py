"""Metascope - terminal browser for Dataverse metadata."""

__version__ = "0.1.0"
