"""
Service interfaces for dependency inversion.
Allows swapping implementations without changing business logic.
"""

from .local_seat_gate import LocalSeatGate
from .seat_gate import SeatGate

__all__ = ['SeatGate', 'LocalSeatGate']
