"""
Exceptions raised by the proposal engine for caller contract violations.

Data-quality problems (out-of-range values, weak field matches, import
conflicts) are returned as results, never raised.
"""


class ProposalEngineError(ValueError):
    pass


class InvalidInputError(ProposalEngineError):
    """Non-positive flow, malformed numeric input, or similar caller mistakes."""


class UnsupportedSectorError(ProposalEngineError):
    def __init__(self, sector, supported=None):
        self.sector = sector
        self.supported = list(supported or [])
        message = f"Unsupported sector: {sector!r}"
        if self.supported:
            message += f" (expected one of: {', '.join(self.supported)})"
        super().__init__(message)


class ReferenceDataError(ProposalEngineError):
    """Injected reference data is malformed or missing an entry the rules need."""
