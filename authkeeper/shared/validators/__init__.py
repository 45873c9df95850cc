"""Shared validators package for the application.

Reusable validation functions called from Pydantic field validators in the
feature schemas.

Available validators:
- password.py: Password strength validation
- identity.py: Username, personal name and phone validation/normalization
"""
