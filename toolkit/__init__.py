"""Shared helpers for Uplink Monitor modules."""
