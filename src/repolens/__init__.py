"""repolens - GitHub repository activity analyzer."""

__version__ = "0.3.0"
