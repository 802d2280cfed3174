"""Exceptions raised while evaluating an instance workload."""


class AuroraLensError(Exception):
    """Base exception for auroralens operations."""

    pass


class CollaboratorUnavailable(AuroraLensError):
    """
    A metrics, catalog or price collaborator failed.

    Raised from the original exception; the evaluation is aborted and no
    partial result is assembled.
    """

    def __init__(self, collaborator: str, message: str):
        self.collaborator = collaborator
        super().__init__(f"{collaborator} unavailable: {message}")


class NoWorkloadData(AuroraLensError):
    """The evaluation window contains no load samples."""

    pass


class MalformedCatalogEntry(AuroraLensError):
    """An expected SKU or attribute is missing from a price list or instance catalog."""

    pass
