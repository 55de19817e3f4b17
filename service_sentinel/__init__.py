"""Sentinel credential-isolating request gateway."""
