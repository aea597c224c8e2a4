"""Operational command-line helpers for the identity broker."""
