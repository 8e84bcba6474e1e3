"""Exceptions raised by the billing engine and its providers."""


class ReconciliationError(Exception):
    """Base exception for billing engine errors."""
    pass


class SeriesOrderError(ReconciliationError):
    """An input series is out of order or has overlapping intervals."""
    pass


class NegativeConsumptionError(ReconciliationError):
    """A consumption interval reports negative usage."""
    pass


class ProviderFormatError(ReconciliationError):
    """A provider file could not be parsed."""
    pass
