"""
Claim Repository.

Reads and creates claims through the claims table and document storage
gateways. Claims are never updated or deleted from the client.
"""

from typing import Optional
from uuid import uuid4

from pydantic import ValidationError

from medclaim.gateways.base import ClaimsTableGateway, ObjectStorageGateway
from medclaim.schemas.claim import Claim, ClaimCreate, DocumentUpload
from medclaim.utils.errors import FetchError, InsertError
from medclaim.utils.logging import get_logger

logger = get_logger(__name__)


def generate_document_name(filename: str) -> str:
    """Random object name keeping the original extension: ``<hex>.<ext>``."""
    upload = DocumentUpload(filename=filename, content=b"")
    token = uuid4().hex
    return f"{token}.{upload.extension}" if upload.extension else token


class ClaimRepository:
    """Access to the remote claims collection."""

    def __init__(
        self,
        claims: ClaimsTableGateway,
        storage: ObjectStorageGateway,
        signed_url_ttl: int = 3600,
    ):
        self._claims = claims
        self._storage = storage
        self._signed_url_ttl = signed_url_ttl

    async def list(self) -> list[Claim]:
        """
        Return every claim, most recently created first.

        Raises:
            FetchError: network/permission failure or unreadable rows
        """
        rows = await self._claims.select_all(order_by="created_at", descending=True)
        try:
            claims = [Claim.model_validate(row) for row in rows]
        except ValidationError as e:
            raise FetchError(f"Unexpected claim row from backend: {e.error_count()} error(s)", original_error=e) from e
        claims.sort(key=lambda claim: claim.created_at, reverse=True)
        logger.debug(f"Fetched {len(claims)} claims")
        return claims

    async def create(self, claim: ClaimCreate, document: Optional[DocumentUpload] = None) -> Optional[Claim]:
        """
        Upload the optional document, then insert the claim row.

        If the upload fails nothing is inserted and UploadError propagates.
        If the insert fails after a successful upload, InsertError propagates
        and the uploaded object is left in storage.

        Returns:
            The stored claim when the provider echoes the row, else None
        """
        document_path: Optional[str] = None
        if document is not None:
            name = generate_document_name(document.filename)
            document_path = await self._storage.upload(name, document.content, document.content_type)
            logger.info(f"Uploaded document {document.filename} ({document.size} bytes) as {document_path}")

        row = claim.to_row(document_url=document_path)
        try:
            stored = await self._claims.insert(row)
        except InsertError as e:
            if document_path is not None:
                logger.warning(f"Claim insert failed; uploaded document left orphaned at {document_path}: {e.message}")
            else:
                logger.warning(f"Claim insert failed: {e.message}")
            raise

        if stored is None:
            logger.info(f"Claim submitted for {claim.patient_name}")
            return None
        try:
            created = Claim.model_validate(stored)
        except ValidationError:
            logger.warning("Claim inserted but the returned row could not be parsed")
            return None
        logger.info(f"Claim submitted: id={created.id}")
        return created

    async def document_link(self, path: str) -> str:
        """Short-lived signed URL for a stored document."""
        return await self._storage.create_signed_url(path, self._signed_url_ttl)

    async def download_document(self, path: str) -> bytes:
        return await self._storage.download(path)
