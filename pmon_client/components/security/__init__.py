"""
Security: anti-forgery token lifecycle.
"""

from pmon_client.components.security.token import Token, TokenManager

__all__ = ["Token", "TokenManager"]
