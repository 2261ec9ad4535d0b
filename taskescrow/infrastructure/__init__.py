"""Infrastructure Layer

Concrete implementations of the core interfaces: SQL unit of work,
Redis guard stores and the event bus.
"""
