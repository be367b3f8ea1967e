# apps/__init__.py

"""
Orbit Board - Django applications

This package holds every application of the system:
- store: Document collections, queries and live subscriptions
- core: Accounts, sessions, permissions and view-model mappers
- workspace: Personal todos, projects, tasks, notifications and WebSockets
- reports: Metrics, calendar and CSV/XLSX exports
"""

__version__ = '0.1.0'
__author__ = 'Orbit Board Team'
