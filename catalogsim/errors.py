"""
Error types shared by the similarity pipeline and the catalog gateways.
"""


class CatalogSimError(Exception):
    """Base class for all catalogsim errors."""
    pass


class ConfigurationError(CatalogSimError):
    """Missing or invalid configuration (settings, feature model, weight table)."""
    pass


class RecordSerializationError(CatalogSimError):
    """A single similarity pair record could not be built."""

    def __init__(self, concept_a: str, concept_b: str, message: str):
        super().__init__(f"Pair ({concept_a}, {concept_b}): {message}")
        self.concept_a = concept_a
        self.concept_b = concept_b


class StoreError(CatalogSimError):
    """A catalog read, write or barrier operation failed."""
    pass


class TransientStoreError(StoreError):
    """A store failure worth retrying (timeouts, lock contention, 429/5xx)."""
    pass
