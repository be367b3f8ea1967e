# apps/store/__init__.py

"""
Store - Document store client of Orbit Board

Functionalities:
- Schema-less collections of JSON documents
- Filtered queries and live subscriptions (snapshots)
- Batched writes and a monotonic server clock
"""
