"""
Per-invocation import context shared by the pipeline stages.
"""

from dataclasses import dataclass, field
from typing import Callable, Optional
import asyncio
import logging

from gridbase.core.config import Settings, settings as default_settings
from gridbase.domain.imports.exceptions import ImportCancelledError

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


@dataclass(frozen=True)
class ImportContext:
    table_id: str
    settings: Settings = field(default_factory=lambda: default_settings)
    cancel_event: Optional[asyncio.Event] = None
    on_progress: Optional[ProgressCallback] = None

    @property
    def cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    def checkpoint(self, stage: str, imported_rows: int = 0) -> None:
        """
        Stop the import if cancellation was requested.

        Called before every external call. Nothing is rolled back: rows and
        fields written before this point stay in place.
        """
        if self.cancelled:
            logger.info(
                f"Import into table '{self.table_id}' cancelled during {stage} "
                f"after {imported_rows} imported rows"
            )
            raise ImportCancelledError(self.table_id, stage, imported_rows)

    def report_progress(self, imported_rows: int, total_rows: int) -> None:
        if self.on_progress is not None:
            self.on_progress(imported_rows, total_rows)
