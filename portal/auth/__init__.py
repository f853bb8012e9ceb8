"""
Authentication helpers for the portal API.

Design goals:
- Local email/password accounts with email verification and password reset.
- Delegated login (Google, GitHub) via OAuth2 authorization code + PKCE.
- Stateless bearer session (HttpOnly cookie or Authorization header).
"""
