from __future__ import annotations

import logging
from typing import Mapping

from .models.job import Status

logger = logging.getLogger(__name__)


class StatusNormalizer:
    """Case-insensitive mapping from a backend's status words to ``Status``.

    Anything missing from the table is reported as ``Status.failed`` so that
    an unknown backend state never looks healthy.
    """

    def __init__(self, provider_name: str, table: Mapping[str, Status]) -> None:
        self.provider_name = provider_name
        self._table = {key.lower(): value for key, value in table.items()}

    def normalize(self, native_status: str | None) -> Status:
        status = self._table.get((native_status or "").lower())
        if status is None:
            logger.warning(
                "Unrecognized provider status, reporting as failed",
                extra={"provider": self.provider_name, "native_status": native_status},
            )
            return Status.failed
        return status


__all__ = ["StatusNormalizer"]
