"""
Authentication application.

Identity boundary for the chat core: owns the User model that every
membership and message points at. Credentials are checked elsewhere
(JWT access tokens via djangorestframework-simplejwt); the chat app only
ever sees an authenticated user and its UUID.

Usage:
    from authentication.models import User
"""
