"""Shared exceptions and configuration for mailwire."""
