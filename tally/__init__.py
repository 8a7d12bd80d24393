"""Tally: time tracking and inventory service."""
