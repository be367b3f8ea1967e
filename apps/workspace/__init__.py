# apps/workspace/__init__.py

"""
Workspace - Live lists of Orbit Board

Functionalities:
- Personal todos, projects, tasks and notifications
- Live list controllers over document store subscriptions
- WebSocket feeds that push a full snapshot on every change
"""
