"""Utility helpers for the Talos node updater."""
