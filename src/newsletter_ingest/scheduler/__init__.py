"""Periodic sync scheduling with retries and bounded job history."""
