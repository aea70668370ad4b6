"""Operational HTTP routes: health probe and job triggers."""
