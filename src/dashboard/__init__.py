"""Aqueduct Food dashboard service."""
