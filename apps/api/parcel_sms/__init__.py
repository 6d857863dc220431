"""Pickup SMS scheduling and dispatch engine."""
