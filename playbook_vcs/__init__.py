"""Version control for playbook graphs: branches, commits and merges."""

__version__ = "0.1.0"
