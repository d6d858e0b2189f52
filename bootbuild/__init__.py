"""
bootbuild — dependency resolution and manifest cache engine for project bootstrapping.
"""

__version__ = "0.1.0"
