"""
Leadflow
Lead lifecycle and follow-up automation engine
"""
__version__ = "1.0.0"
