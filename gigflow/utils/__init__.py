"""Logging and real-time notification helpers."""
