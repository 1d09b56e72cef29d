"""
Domain layer for the order replica sync service.

This layer contains business entities and value objects, independent of
persistence and transport concerns.
"""
