"""
Reservation Kernel

Lifecycle engine for equipment units awaiting sale:
- Explicit state-transition table for equipment availability
- Checklist / approval / rejection workflow with row-level locking
- FIFO queue promotion on rejection
- Business-day deadline calendar (Sundays and fixed holidays excluded)
- Append-only change log for client/advisor/deadline edits
"""

__version__ = "0.1.0"
