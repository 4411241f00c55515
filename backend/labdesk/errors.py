"""
Exception types raised by labdesk services.
"""

from __future__ import annotations

from typing import Sequence


class LabdeskError(Exception):
    """Base class for errors raised by labdesk services."""


class DataAccessError(LabdeskError):
    """The tabular data service could not answer a query.

    Raised for transport failures and error responses (including a missing
    table); an empty result is not an error.
    """

    def __init__(self, message: str, *, table: str | None = None, status: int | None = None) -> None:
        super().__init__(message)
        self.table = table
        self.status = status


class SourcesUnavailableError(LabdeskError):
    """Every identity source that was queried failed with a DataAccessError."""

    def __init__(self, errors: Sequence[DataAccessError]) -> None:
        self.errors = list(errors)
        tables = ", ".join(e.table or "?" for e in self.errors)
        super().__init__(f"All patient identity sources unavailable ({tables})")


class MissingParametersError(LabdeskError):
    """Required template parameters were left blank."""

    def __init__(self, names: Sequence[str]) -> None:
        self.names = list(names)
        super().__init__(f"Please fill in required parameters: {', '.join(self.names)}")
