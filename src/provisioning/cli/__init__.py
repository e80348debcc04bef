"""
Command-line interface for account provisioning.

Entry point: ``provisioning`` (see ``pyproject.toml [project.scripts]``).
"""
