"""Exceptions raised by the modeler services."""

from __future__ import annotations

from collections.abc import Sequence


class ModelerError(Exception):
    """Base class for modeler failures."""


class LockError(ModelerError):
    """The execution lock could not be read or written."""


class ForecastError(ModelerError):
    """The trend model could not be fitted or evaluated."""


class RealmSaveError(ModelerError):
    """The computed values could not be saved on the realm record."""


class RateLimitStoreError(ModelerError):
    """The rate limiter store rejected a write."""


class PropagationError(ModelerError):
    """One or more independent writes failed while propagating a model."""

    def __init__(self, errors: Sequence[ModelerError]) -> None:
        self.errors = list(errors)
        super().__init__("; ".join(str(err) for err in self.errors))
