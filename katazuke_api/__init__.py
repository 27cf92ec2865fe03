"""
Katazuke Navi API - room cleanup preview backend
"""

__version__ = "3.4"
