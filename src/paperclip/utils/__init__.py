"""Shared helpers for Paperclip."""
