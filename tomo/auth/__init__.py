"""
Authentication for the Tomo API.

Design goals:
- Stateless bearer tokens (HS256 JWT) issued at login, registration and Google exchange.
- Google identity tokens verified against Google's published keys.
- Passwords stored only as bcrypt hashes.
"""
