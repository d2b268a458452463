"""Chunk and index-state persistence using psycopg3 and PGVector."""

from abc import ABC, abstractmethod
from typing import List, Sequence

from psycopg import Connection
from psycopg_pool import ConnectionPool

from docpipe.domain.chunk import EmbeddedChunk
from docpipe.domain.document import INDEX_INDEXED, INDEX_OUTDATED
from docpipe.logging import get_logger

logger = get_logger(__name__)


class ChunkSink(ABC):
    """Where embedded chunks and index state end up."""

    @abstractmethod
    def save_chunks(self, document_id: str, pairs: Sequence[EmbeddedChunk]) -> None:
        """Replace every stored chunk of a document with ``pairs``."""

    @abstractmethod
    def mark_index_outdated(self, document_id: str) -> None:
        """Flag a document's search index as stale."""

    @abstractmethod
    def save_title_embedding(self, document_id: str, embedding: List[float]) -> None:
        """Store the title vector of a document."""

    @abstractmethod
    def set_index_status(self, document_id: str, status: str) -> None:
        """Record a document's index status."""

    @abstractmethod
    def mark_indexed(self, document_id: str, title: str, content_hash: str) -> None:
        """Record a successful index run for a document."""


def _vector_literal(embedding: Sequence[float]) -> str:
    return "[" + ",".join(str(x) for x in embedding) + "]"


class ChunkStore(ChunkSink):
    """PostgreSQL chunk store.

    Chunk rows of a document are replaced wholesale on every save, never
    patched in place. Index state and title vectors live in a separate
    per-document table.
    """

    STATE_TABLE = "document_index_state"
    META_TABLE = "document_index_meta"

    def __init__(
        self,
        database_url: str,
        table_name: str = "document_chunks",
        embedding_dim: int | None = None,
    ):
        """Initialize ChunkStore.

        Args:
            database_url: PostgreSQL connection URL
            table_name: Chunk table name
            embedding_dim: Vector dimension; columns are left untyped when omitted
        """
        self._database_url = database_url
        self._table_name = table_name
        self._embedding_dim = embedding_dim
        self._pool: ConnectionPool | None = None

    @property
    def table_name(self) -> str:
        return self._table_name

    def initialize(self) -> None:
        """Initialize connection pool and create tables if needed."""
        self._pool = ConnectionPool(
            conninfo=self._database_url,
            min_size=1,
            max_size=10,
            open=False,
            kwargs={"autocommit": True},
        )
        self._pool.open()

        with self._pool.connection() as conn:
            self._create_tables(conn)

    def _create_tables(self, conn: Connection) -> None:
        vector_type = f"vector({self._embedding_dim})" if self._embedding_dim else "vector"

        conn.execute("CREATE EXTENSION IF NOT EXISTS vector")
        conn.execute(f"""
            CREATE TABLE IF NOT EXISTS {self._table_name} (
                id SERIAL PRIMARY KEY,
                document_id VARCHAR(255) NOT NULL,
                content TEXT NOT NULL,
                chunk_index INTEGER,
                heading TEXT,
                heading_level INTEGER,
                header_breadcrumb TEXT,
                breadcrumb_hash VARCHAR(64),
                embedding {vector_type} NOT NULL,
                created_at TIMESTAMPTZ DEFAULT NOW()
            )
        """)
        conn.execute(f"""
            CREATE INDEX IF NOT EXISTS {self._table_name}_document_id_idx
            ON {self._table_name}(document_id)
        """)
        conn.execute(f"""
            CREATE TABLE IF NOT EXISTS {self.STATE_TABLE} (
                document_id VARCHAR(255) PRIMARY KEY,
                index_status VARCHAR(16) NOT NULL DEFAULT 'pending',
                title_embedding {vector_type},
                last_indexed_title TEXT,
                last_indexed_content_hash VARCHAR(64),
                updated_at TIMESTAMPTZ DEFAULT NOW()
            )
        """)
        conn.execute(f"""
            CREATE TABLE IF NOT EXISTS {self.META_TABLE} (
                key VARCHAR(64) PRIMARY KEY,
                value TEXT NOT NULL
            )
        """)

    def close(self) -> None:
        """Close connection pool."""
        if self._pool:
            self._pool.close()

    def _require_pool(self) -> ConnectionPool:
        if not self._pool:
            raise RuntimeError("ChunkStore not initialized")
        return self._pool

    def save_chunks(self, document_id: str, pairs: Sequence[EmbeddedChunk]) -> None:
        pool = self._require_pool()
        rows = [
            (
                document_id,
                pair.chunk.content,
                pair.chunk.index,
                pair.chunk.heading,
                pair.chunk.heading_level,
                pair.chunk.header_breadcrumb,
                pair.chunk.breadcrumb_hash,
                _vector_literal(pair.embedding),
            )
            for pair in pairs
        ]

        with pool.connection() as conn:
            with conn.transaction():
                conn.execute(
                    f"DELETE FROM {self._table_name} WHERE document_id = %s",
                    (document_id,),
                )
                if rows:
                    with conn.cursor() as cur:
                        cur.executemany(
                            f"""
                            INSERT INTO {self._table_name}
                            (document_id, content, chunk_index, heading, heading_level,
                             header_breadcrumb, breadcrumb_hash, embedding)
                            VALUES (%s, %s, %s, %s, %s, %s, %s, %s::vector)
                            """,
                            rows,
                        )

        logger.debug(f"Stored {len(rows)} chunks for document {document_id}")

    def count_chunks(self, document_id: str) -> int:
        pool = self._require_pool()
        with pool.connection() as conn:
            row = conn.execute(
                f"SELECT COUNT(*) FROM {self._table_name} WHERE document_id = %s",
                (document_id,),
            ).fetchone()
        return row[0] if row else 0

    def save_title_embedding(self, document_id: str, embedding: List[float]) -> None:
        self._upsert_state(document_id, "title_embedding", _vector_literal(embedding), cast="::vector")

    def set_index_status(self, document_id: str, status: str) -> None:
        self._upsert_state(document_id, "index_status", status)

    def mark_index_outdated(self, document_id: str) -> None:
        self.set_index_status(document_id, INDEX_OUTDATED)

    def mark_indexed(self, document_id: str, title: str, content_hash: str) -> None:
        pool = self._require_pool()
        with pool.connection() as conn:
            conn.execute(
                f"""
                INSERT INTO {self.STATE_TABLE}
                (document_id, index_status, last_indexed_title, last_indexed_content_hash)
                VALUES (%s, %s, %s, %s)
                ON CONFLICT (document_id) DO UPDATE SET
                    index_status = EXCLUDED.index_status,
                    last_indexed_title = EXCLUDED.last_indexed_title,
                    last_indexed_content_hash = EXCLUDED.last_indexed_content_hash,
                    updated_at = NOW()
                """,
                (document_id, INDEX_INDEXED, title, content_hash),
            )

    def get_index_state(self, document_id: str) -> dict | None:
        """Index status and last indexed title/hash of a document."""
        pool = self._require_pool()
        with pool.connection() as conn:
            row = conn.execute(
                f"""
                SELECT index_status, last_indexed_title, last_indexed_content_hash
                FROM {self.STATE_TABLE} WHERE document_id = %s
                """,
                (document_id,),
            ).fetchone()
        if row is None:
            return None
        return {
            "index_status": row[0],
            "last_indexed_title": row[1],
            "last_indexed_content_hash": row[2],
        }

    def get_index_signature(self) -> str | None:
        pool = self._require_pool()
        with pool.connection() as conn:
            row = conn.execute(
                f"SELECT value FROM {self.META_TABLE} WHERE key = %s",
                ("index_signature",),
            ).fetchone()
        return row[0] if row else None

    def set_index_signature(self, signature: str) -> None:
        pool = self._require_pool()
        with pool.connection() as conn:
            conn.execute(
                f"""
                INSERT INTO {self.META_TABLE} (key, value) VALUES (%s, %s)
                ON CONFLICT (key) DO UPDATE SET value = EXCLUDED.value
                """,
                ("index_signature", signature),
            )

    def reset(self) -> None:
        """Drop every stored chunk and index state."""
        pool = self._require_pool()
        with pool.connection() as conn:
            conn.execute(f"TRUNCATE {self._table_name}, {self.STATE_TABLE}")

    def _upsert_state(self, document_id: str, column: str, value, cast: str = "") -> None:
        pool = self._require_pool()
        with pool.connection() as conn:
            conn.execute(
                f"""
                INSERT INTO {self.STATE_TABLE} (document_id, {column})
                VALUES (%s, %s{cast})
                ON CONFLICT (document_id) DO UPDATE SET
                    {column} = EXCLUDED.{column},
                    updated_at = NOW()
                """,
                (document_id, value),
            )
