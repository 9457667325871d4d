"""
General waybill document storage

A departure's general waybill is a derived artifact: it is rendered from the
current departure and shipment data, written under DOCUMENT_STORAGE_DIR and
re-rendered on every fetch. Only the number printed on it is permanent.
"""
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Iterable, Optional

from app.core.config import settings
from app.core.exceptions import DocumentGenerationError, DocumentNotFoundError
from app.core.logging import get_logger
from app.domain.services.export_service import generate_general_waybill_excel

logger = get_logger(__name__)


class WaybillDocumentStore:
    """Renders general waybills to files and reads them back"""

    def __init__(
        self,
        storage_dir: Optional[str] = None,
        company_name: Optional[str] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.storage_dir = Path(storage_dir or settings.DOCUMENT_STORAGE_DIR)
        self.company_name = company_name or settings.COMPANY_NAME
        self.clock = clock

    def _filename(self, departure_id: int) -> str:
        stamp = int(self.clock().timestamp() * 1000)
        return f"general-waybill-{departure_id}-{stamp}.xlsx"

    def render_copy(self, departure: Any, shipments: Iterable[Any], include_prices: bool = True) -> bytes:
        """
        Render a document in memory without touching storage.

        Raises:
            DocumentGenerationError: rendering failed
        """
        try:
            return generate_general_waybill_excel(
                departure,
                shipments,
                company_name=self.company_name,
                generated_at=self.clock(),
                include_prices=include_prices,
            )
        except (ValueError, TypeError, AttributeError) as e:
            logger.error(
                "General waybill rendering failed",
                extra_data={"departure_id": departure.id, "error": str(e)},
                exc_info=True,
            )
            raise DocumentGenerationError(departure.id, str(e)) from e

    def render(self, departure: Any, shipments: Iterable[Any]) -> str:
        """
        Write a fresh document for ``departure`` and return its path.

        Raises:
            DocumentGenerationError: rendering or writing failed; nothing is left on disk
        """
        path = self.storage_dir / self._filename(departure.id)
        content = self.render_copy(departure, shipments)
        try:
            self.storage_dir.mkdir(parents=True, exist_ok=True)
            path.write_bytes(content)
        except OSError as e:
            logger.error(
                "General waybill could not be written",
                extra_data={"departure_id": departure.id, "path": str(path), "error": str(e)},
                exc_info=True,
            )
            self.remove(str(path))
            raise DocumentGenerationError(departure.id, str(e)) from e

        logger.info(
            "General waybill rendered",
            extra_data={
                "departure_id": departure.id,
                "general_waybill_number": departure.general_waybill_number,
                "path": str(path),
                "size_bytes": len(content),
            },
        )
        return str(path)

    def remove(self, path: Optional[str]) -> None:
        """Delete a document file; a missing file is not an error"""
        if not path:
            return
        try:
            Path(path).unlink(missing_ok=True)
        except OSError as e:
            logger.warning(
                "Could not delete general waybill file",
                extra_data={"path": path, "error": str(e)},
            )

    def read(self, departure_id: int, path: Optional[str]) -> bytes:
        if not path or not Path(path).is_file():
            raise DocumentNotFoundError(departure_id)
        return Path(path).read_bytes()
