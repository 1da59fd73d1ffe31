"""Exceptions and warnings raised while building the analytic file."""


class SchemaError(ValueError):
    """An input extract is missing expected columns."""

    def __init__(self, source: str, missing):
        self.source = source
        self.missing = sorted(missing)
        super().__init__(
            f"{source}: missing required column(s) {', '.join(self.missing)}"
        )


class KeyIntegrityError(ValueError):
    """Person-level keys violate the one-row-per-person contract."""


class FillConflictError(ValueError):
    """A fill id carries different attributes after join fan-out."""


class SurveyDesignError(ValueError):
    """The sampling design cannot be used as configured."""


class FillConflictWarning(UserWarning):
    """Data-quality warning for fills with inconsistent attributes."""


class QCError(ValueError):
    """One or more QC checks failed on the linked file."""
