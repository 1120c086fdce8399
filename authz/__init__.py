"""
Authorization decision engine.

    from authz.core.auth import DecisionEngine
    from authz.main import create_app
"""

__version__ = "0.1.0"
