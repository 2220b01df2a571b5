"""
API routes package
"""
from flexia.api.routes import auth, claims, earnings, firms, notifications, affiliate, admin

__all__ = [
    "auth",
    "claims",
    "earnings",
    "firms",
    "notifications",
    "affiliate",
    "admin",
]
