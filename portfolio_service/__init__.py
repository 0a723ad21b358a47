"""
Portfolio content service with a self-managing HTTPS listener.
"""

__version__ = "1.0.0"
