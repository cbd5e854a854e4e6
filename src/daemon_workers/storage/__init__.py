"""Durable job-outcome records."""
