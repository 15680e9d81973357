"""Kernel services - imperative shell around the pure domain."""

from rental_kernel.services.sequence_service import SequenceCounter, SequenceService

__all__ = ["SequenceCounter", "SequenceService"]
