"""Credential use-cases (register / login / refresh / logout) on top of sessions."""
