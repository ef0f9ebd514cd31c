"""
Error taxonomy for dataset loading.

- StructuralError: the primary table is malformed. Fatal to the load.
- AxisOrderingWarning: the auxiliary axis-ordering table is malformed.
  Logged and recorded, the load proceeds without axis ordering.
- IngestionFailure: the primary table could not be fetched. Fatal to the
  load, retrying may succeed.
- ViewSettingsError: the filter or logscale pattern of a database is not a
  valid regular expression. Fatal to the load.
"""


class StructuralError(ValueError):
    """Raised when the primary data table violates a structural invariant."""


class ViewSettingsError(ValueError):
    """Raised when charts cannot be built from a database's view settings."""


class AxisOrderingWarning(UserWarning):
    """Recorded when the axis-ordering table is rejected."""


class IngestionFailure(IOError):
    """Raised when the text of a data file could not be read."""

    def __init__(self, location: str, reason: str):
        super().__init__(f"Error loading {location}: {reason}")
        self.location = location
        self.reason = reason
