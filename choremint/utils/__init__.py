"""Utility helpers for ChoreMint."""
