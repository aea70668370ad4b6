"""Meditation CMS backend package."""
