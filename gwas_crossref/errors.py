"""
Exception hierarchy for the cross-referencing toolkit.
"""


class CrossrefError(Exception):
    """Base class for all errors raised by gwas_crossref."""


class IncompatibleGenomeError(CrossrefError):
    """Two range sets on different genome builds were combined."""

    def __init__(self, left, right, context: str = ""):
        self.left = left
        self.right = right
        self.context = context
        where = f" in {context}" if context else ""
        super().__init__(f"Incompatible genome builds{where}: {left} vs {right}")


class InvalidRangeError(CrossrefError, ValueError):
    """Coordinates are missing, negative or inverted."""


class SourceNotFoundError(CrossrefError, FileNotFoundError):
    """A local annotation resource is not available."""


class DownloadError(CrossrefError):
    """A remote annotation resource could not be fetched."""


class UnknownTermError(CrossrefError, KeyError):
    """An ontology term identifier is not present in the loaded graph."""

    def __str__(self):
        return f"Unknown ontology term: {self.args[0]}" if self.args else "Unknown ontology term"
