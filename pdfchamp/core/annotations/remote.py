"""
Best-effort mirror of annotations in a hosted Supabase table.
"""
import logging
from typing import Any, Dict, List, Optional

from supabase import AsyncClient, acreate_client

from pdfchamp.core.config import AppConfig
from pdfchamp.core.exceptions import (
    ErrorCode,
    MalformedAnnotationData,
    RemotePersistenceError,
)

from .models import Annotation, annotation_from_dict, utc_now

logger = logging.getLogger(__name__)


class RemoteAnnotationStore:
    """
    Row-level CRUD against the annotations table.

    One row per annotation: ``id``, ``pdf_path``, ``type``, ``page_number``,
    ``data`` (the full annotation JSON), ``created_at`` and ``modified_at``.
    Every client failure is re-raised as RemotePersistenceError.
    """

    def __init__(self, client: AsyncClient, table: str = "pdf_annotations",
                 url: Optional[str] = None):
        self._client = client
        self.table = table
        self.url = url

    async def create(self, pdf_path: str, annotation: Annotation) -> None:
        """Insert one row for ``annotation``."""
        row = {
            'id': annotation.id,
            'pdf_path': pdf_path,
            'type': annotation.type,
            'page_number': annotation.page_number,
            'data': annotation.to_dict(),
            'created_at': annotation.created_at.isoformat(),
        }
        await self._execute('create', self._client.table(self.table).insert(row))
        logger.debug("Inserted annotation %s for %s", annotation.id, pdf_path)

    async def update(self, pdf_path: str, annotation: Annotation) -> None:
        """Replace the stored payload of the row matching ``annotation.id``."""
        changes = {
            'data': annotation.to_dict(),
            'page_number': annotation.page_number,
            'modified_at': utc_now().isoformat(),
        }
        query = self._client.table(self.table).update(changes).eq('id', annotation.id)
        await self._execute('update', query)
        logger.debug("Updated annotation %s for %s", annotation.id, pdf_path)

    async def delete(self, annotation_id: str) -> None:
        """Delete the row matching ``annotation_id``."""
        query = self._client.table(self.table).delete().eq('id', annotation_id)
        await self._execute('delete', query)
        logger.debug("Deleted annotation %s", annotation_id)

    async def clear(self, pdf_path: str) -> None:
        """Delete every row belonging to ``pdf_path``."""
        query = self._client.table(self.table).delete().eq('pdf_path', pdf_path)
        await self._execute('clear', query)
        logger.debug("Cleared remote annotations for %s", pdf_path)

    async def load_all(self, pdf_path: str) -> List[Annotation]:
        """
        Fetch every annotation stored for a document, oldest first.

        Raises:
            RemotePersistenceError: if the query fails
            MalformedAnnotationData: if a row cannot be deserialized
        """
        query = (
            self._client.table(self.table)
            .select('*')
            .eq('pdf_path', pdf_path)
            .order('created_at')
        )
        response = await self._execute('load_all', query)
        rows = getattr(response, 'data', None) or []

        annotations = [self._row_to_annotation(row) for row in rows]
        logger.debug("Loaded %d annotations for %s from remote", len(annotations), pdf_path)
        return annotations

    @staticmethod
    def _row_to_annotation(row: Dict[str, Any]) -> Annotation:
        data = row.get('data')
        if not isinstance(data, dict):
            raise MalformedAnnotationData(
                f"Remote row {row.get('id')!r} has no annotation payload",
                operation='load_all',
            )
        # The type column is authoritative; the payload may predate it.
        if row.get('type') is not None:
            data = dict(data, type=row['type'])
        return annotation_from_dict(data)

    async def _execute(self, operation: str, query: Any) -> Any:
        try:
            return await query.execute()
        except Exception as e:
            raise RemotePersistenceError(
                f"Remote annotation {operation} failed",
                code=ErrorCode.NETWORK_REQUEST_FAILED,
                original_error=e,
                url=self.url,
            ) from e


async def connect_remote_store(config: AppConfig) -> Optional[RemoteAnnotationStore]:
    """
    Create a remote store from configuration.

    Returns:
        The store, or None when Supabase is not configured

    Raises:
        RemotePersistenceError: if the client cannot be created
    """
    if not config.has_supabase_config:
        logger.warning("Supabase configuration not found")
        return None

    logger.info("Initializing Supabase client")
    try:
        client = await acreate_client(config.supabase_url, config.supabase_anon_key)
    except Exception as e:
        raise RemotePersistenceError(
            "Failed to initialize Supabase",
            code=ErrorCode.NETWORK_CONNECTION_ERROR,
            original_error=e,
            url=config.supabase_url,
        ) from e
    return RemoteAnnotationStore(client, table=config.annotations_table, url=config.supabase_url)
