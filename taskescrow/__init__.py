"""
TaskEscrow - Escrow-backed task marketplace engine

A poster funds an escrow for work a doer performs. Funds are held while
the task moves through its lifecycle, released on approval, auto-released
after the review window, or redirected by a dispute resolution.

Architecture:
- core: domain entities, the fee engine, exceptions, repository interfaces
- infrastructure: SQL persistence (unit of work), Redis stores, event bus
- services: task state machine, wallet ledger, guards, scheduler, disputes
- routes: FastAPI routers
"""

__version__ = "0.1.0"
