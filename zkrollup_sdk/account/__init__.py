from .nonce import NonceReservation, NonceTracker

__all__ = ["NonceTracker", "NonceReservation"]
