"""Adapters between the agent runner and its transports."""
