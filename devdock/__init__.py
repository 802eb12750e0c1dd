"""
devdock - deploy, run and monitor local development projects
"""

__version__ = "1.0.0"
