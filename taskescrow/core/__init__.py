"""Core domain layer

Entities, the fee engine, exceptions and repository interfaces.
No infrastructure imports live here.
"""
