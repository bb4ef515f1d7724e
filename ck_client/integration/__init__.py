"""Integration utilities for the ConceptKernel client."""

from .direct_publish import DirectPublisher, NatsDirectPublisher, encode_payload

__all__ = ["DirectPublisher", "NatsDirectPublisher", "encode_payload"]
