"""Core components for the apiq application.

This package contains the configuration manager, the exception hierarchy,
and the base class shared by all API clients.
"""
