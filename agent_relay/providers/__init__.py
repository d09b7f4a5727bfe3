"""Clients for the downstream agent service."""
