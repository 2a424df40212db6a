"""Collaborators that drive or render a machine: replay and diagram generation."""
