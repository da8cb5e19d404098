"""
Linking a third-party API key to an authenticated identity (OAuth2 PKCE).
"""
