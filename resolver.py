import logging
from typing import Any, Dict, Optional

from pydantic import ValidationError

from codec import destination_for
from errors import Gone, InvalidRequest, NotFound, Unprocessable
from schema import CONTENT_MODELS, QRCodeRecord
from store import DocumentStore

logger = logging.getLogger(__name__)


def find_code(store: DocumentStore, identifier: str, alias_first: bool = True) -> Optional[Dict[str, Any]]:
    """Look a code up by its short alias and by its primary id.

    The redirect path tries the alias first; analytics callers usually hold
    the primary id and pass alias_first=False.
    """

    def by_alias():
        matches = store.query("qrcodes", [("short_id", "==", identifier)], limit=1)
        return matches[0] if matches else None

    def by_id():
        return store.get("qrcodes", identifier)

    first, second = (by_alias, by_id) if alias_first else (by_id, by_alias)
    return first() or second()


class Resolver:
    def __init__(self, store: DocumentStore):
        self.store = store

    def resolve(self, identifier: str) -> QRCodeRecord:
        identifier = (identifier or "").strip()
        if not identifier:
            raise InvalidRequest("Invalid QR code URL")

        document = find_code(self.store, identifier)
        if document is None:
            logger.warning(f"QR code not found for identifier {identifier!r}")
            raise NotFound("QR Code not found")

        code = QRCodeRecord.model_validate(document)
        if not code.has_payload:
            logger.warning(f"QR code {code.id} has no content or destination (data missing)")
            raise NotFound("QR Code data not found")

        if not code.is_active:
            logger.info(f"QR code {code.id} is inactive")
            raise Gone("QR Code is inactive")

        return code

    def destination_for(self, code: QRCodeRecord) -> str:
        """Stored destination first, otherwise derive one from the content."""
        if code.destination_url:
            return code.destination_url

        if code.content_type not in CONTENT_MODELS:
            logger.error(
                f"QR code {code.id} has unsupported content type {code.content_type!r}: "
                f"{destination_for(code.content_type, code.content)}"
            )
            raise Unprocessable()

        try:
            destination = destination_for(code.content_type, code.content)
        except ValidationError as e:
            logger.error(f"QR code {code.id} has malformed {code.content_type} content: {e}")
            raise Unprocessable()

        if not destination:
            logger.error(f"No destination could be derived for QR code {code.id}")
            raise Unprocessable()
        return destination
