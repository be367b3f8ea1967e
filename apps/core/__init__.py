# apps/core/__init__.py

"""
Core - Accounts, sessions and permissions of Orbit Board

Functionalities:
- Registration, sign-in and sign-out (auth_service)
- Per-session identity resolution (session)
- Role based permissions (admin, manager, user)
"""
