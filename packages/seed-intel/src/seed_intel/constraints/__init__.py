"""Trigger-based business rule discovery and constraint handling."""
