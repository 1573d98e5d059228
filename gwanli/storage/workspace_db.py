"""SQLite database for indexed workspace content."""

import json
import logging
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

import aiosqlite

from .models import DatabasePageRecord, DatabaseRecord, PageRecord, ResultPage, SearchResult

PATTERN_FIELDS = ("slug", "title")

SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS page (
        id TEXT PRIMARY KEY,
        title TEXT NOT NULL,
        content TEXT NOT NULL,
        slug TEXT,
        created_at TEXT NOT NULL,
        last_updated TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS "database" (
        id TEXT PRIMARY KEY,
        title TEXT NOT NULL,
        slug TEXT,
        properties TEXT NOT NULL,
        created_at TEXT NOT NULL,
        last_updated TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS database_page (
        id TEXT PRIMARY KEY,
        database_id TEXT,
        title TEXT NOT NULL,
        properties TEXT NOT NULL,
        content TEXT NOT NULL,
        created_at TEXT NOT NULL,
        last_updated TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_page_slug ON page(slug)",
    'CREATE INDEX IF NOT EXISTS idx_database_slug ON "database"(slug)',
    "CREATE INDEX IF NOT EXISTS idx_database_page_database_id ON database_page(database_id)",
]

# FTS5 tables mirror their base tables through triggers: name -> (base table, indexed columns)
FTS_TABLES = {
    "page_fts": ("page", ("title", "content")),
    "database_fts": ("database", ("title",)),
    "database_page_fts": ("database_page", ("title", "content")),
}


def _fts_statements(fts_name: str, base: str, columns: Sequence[str]) -> List[str]:
    cols = ", ".join(columns)
    new_values = ", ".join(f"new.{c}" for c in columns)
    old_values = ", ".join(f"old.{c}" for c in columns)
    return [
        f"""
        CREATE VIRTUAL TABLE IF NOT EXISTS {fts_name} USING fts5(
            {cols}, content='{base}', content_rowid='rowid'
        )
        """,
        f"""
        CREATE TRIGGER IF NOT EXISTS {fts_name}_ai AFTER INSERT ON "{base}" BEGIN
            INSERT INTO {fts_name}(rowid, {cols}) VALUES (new.rowid, {new_values});
        END
        """,
        f"""
        CREATE TRIGGER IF NOT EXISTS {fts_name}_ad AFTER DELETE ON "{base}" BEGIN
            INSERT INTO {fts_name}({fts_name}, rowid, {cols}) VALUES ('delete', old.rowid, {old_values});
        END
        """,
        f"""
        CREATE TRIGGER IF NOT EXISTS {fts_name}_au AFTER UPDATE ON "{base}" BEGIN
            INSERT INTO {fts_name}({fts_name}, rowid, {cols}) VALUES ('delete', old.rowid, {old_values});
            INSERT INTO {fts_name}(rowid, {cols}) VALUES (new.rowid, {new_values});
        END
        """,
    ]


def build_match_query(query: str) -> str:
    """
    Turn free text into an FTS5 query.

    Every whitespace separated term is quoted as a phrase so punctuation is
    never parsed as FTS syntax; terms are implicitly ANDed.

    Args:
        query: User query

    Returns:
        FTS5 MATCH expression, empty if the query has no terms
    """
    terms = [term for term in query.split() if term]
    return " ".join('"' + term.replace('"', '""') + '"' for term in terms)


def _check_paging(limit: int, offset: int) -> None:
    if limit < 1:
        raise ValueError(f"limit must be at least 1, got {limit}")
    if offset < 0:
        raise ValueError(f"offset must not be negative, got {offset}")


class WorkspaceDB:
    """Stores pages, databases and database rows with full-text search."""

    def __init__(self, db_path: str = "data/workspace.db", logger: Optional[logging.Logger] = None):
        """
        Initialize workspace database.

        Args:
            db_path: Path to SQLite database file
            logger: Optional logger, defaults to the module logger
        """
        self.db_path = db_path
        self.logger = logger or logging.getLogger(__name__)
        self._initialized = False

    async def initialize(self) -> None:
        """Initialize database schema."""
        if self._initialized:
            return

        # Ensure directory exists
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        async with aiosqlite.connect(self.db_path) as db:
            for statement in SCHEMA:
                await db.execute(statement)
            for fts_name, (base, columns) in FTS_TABLES.items():
                for statement in _fts_statements(fts_name, base, columns):
                    await db.execute(statement)
            await db.commit()

        self._initialized = True

    async def upsert_pages(self, records: Sequence[PageRecord]) -> None:
        """
        Insert or replace pages by id in a single transaction.

        Args:
            records: Pages to store
        """
        await self.initialize()
        if not records:
            return

        async with aiosqlite.connect(self.db_path) as db:
            await db.executemany(
                """
                INSERT INTO page (id, title, content, slug, created_at, last_updated)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    title = excluded.title,
                    content = excluded.content,
                    slug = excluded.slug,
                    created_at = excluded.created_at,
                    last_updated = excluded.last_updated
                """,
                [(r.id, r.title, r.content, r.slug, r.created_at, r.last_updated) for r in records],
            )
            await db.commit()

        self.logger.debug(f"Upserted {len(records)} pages")

    async def upsert_databases(self, records: Sequence[DatabaseRecord]) -> None:
        """
        Insert or replace databases by id in a single transaction.

        Args:
            records: Databases to store
        """
        await self.initialize()
        if not records:
            return

        async with aiosqlite.connect(self.db_path) as db:
            await db.executemany(
                """
                INSERT INTO "database" (id, title, slug, properties, created_at, last_updated)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    title = excluded.title,
                    slug = excluded.slug,
                    properties = excluded.properties,
                    created_at = excluded.created_at,
                    last_updated = excluded.last_updated
                """,
                [
                    (r.id, r.title, r.slug, json.dumps(r.properties), r.created_at, r.last_updated)
                    for r in records
                ],
            )
            await db.commit()

        self.logger.debug(f"Upserted {len(records)} databases")

    async def upsert_database_pages(self, records: Sequence[DatabasePageRecord]) -> None:
        """
        Insert or replace database rows by id in a single transaction.

        Args:
            records: Database rows to store
        """
        await self.initialize()
        if not records:
            return

        async with aiosqlite.connect(self.db_path) as db:
            await db.executemany(
                """
                INSERT INTO database_page (id, database_id, title, properties, content, created_at, last_updated)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    database_id = excluded.database_id,
                    title = excluded.title,
                    properties = excluded.properties,
                    content = excluded.content,
                    created_at = excluded.created_at,
                    last_updated = excluded.last_updated
                """,
                [
                    (
                        r.id,
                        r.database_id,
                        r.title,
                        json.dumps(r.properties),
                        r.content,
                        r.created_at,
                        r.last_updated,
                    )
                    for r in records
                ],
            )
            await db.commit()

        self.logger.debug(f"Upserted {len(records)} database rows")

    async def search(
        self,
        query: str,
        limit: int = 10,
        offset: int = 0,
        include_content: bool = False,
    ) -> ResultPage:
        """
        Full-text search across pages, databases and database rows.

        Results are ordered by the FTS5 bm25 rank ascending (more negative
        is a better match).

        Args:
            query: Free text query
            limit: Maximum number of results
            offset: Number of results to skip
            include_content: Whether to return the markdown content

        Returns:
            ResultPage with results, total_count and has_more
        """
        _check_paging(limit, offset)
        await self.initialize()

        match = build_match_query(query)
        if not match:
            return ResultPage(results=[], total_count=0, has_more=False)

        union = """
            SELECT 'page' AS type, p.id AS id, p.title AS title, p.slug AS slug,
                   p.content AS content, p.created_at AS created_at,
                   p.last_updated AS last_updated, page_fts.rank AS rank
            FROM page_fts JOIN page p ON p.rowid = page_fts.rowid
            WHERE page_fts MATCH ?
            UNION ALL
            SELECT 'database', d.id, d.title, d.slug, NULL, d.created_at,
                   d.last_updated, database_fts.rank
            FROM database_fts JOIN "database" d ON d.rowid = database_fts.rowid
            WHERE database_fts MATCH ?
            UNION ALL
            SELECT 'database_page', r.id, r.title, NULL, r.content, r.created_at,
                   r.last_updated, database_page_fts.rank
            FROM database_page_fts JOIN database_page r ON r.rowid = database_page_fts.rowid
            WHERE database_page_fts MATCH ?
        """

        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                f"SELECT COUNT(*) FROM ({union})", (match, match, match)
            ) as cursor:
                total_count = (await cursor.fetchone())[0]

            async with db.execute(
                f"SELECT * FROM ({union}) ORDER BY rank ASC, id ASC LIMIT ? OFFSET ?",
                (match, match, match, limit, offset),
            ) as cursor:
                rows = await cursor.fetchall()

        results = [
            SearchResult(
                type=row["type"],
                id=row["id"],
                title=row["title"],
                slug=row["slug"],
                created_at=row["created_at"],
                last_updated=row["last_updated"],
                content=row["content"] if include_content else None,
                rank=row["rank"],
            )
            for row in rows
        ]

        return ResultPage(
            results=results,
            total_count=total_count,
            has_more=offset + limit < total_count,
        )

    async def find_by_pattern(
        self,
        pattern: str,
        field: str = "slug",
        limit: int = 10,
        offset: int = 0,
        include_content: bool = False,
    ) -> ResultPage:
        """
        Glob match against slugs or titles.

        Supports ``*``, ``?`` and ``[set]``. A slug pattern without a leading
        ``/`` is anchored at the root, so ``proj*`` matches like ``/proj*``.

        Args:
            pattern: Glob pattern
            field: "slug" or "title"
            limit: Maximum number of results
            offset: Number of results to skip
            include_content: Whether to return the markdown content

        Returns:
            ResultPage ordered by the matched field
        """
        if field not in PATTERN_FIELDS:
            raise ValueError(f"Unsupported field: {field}. Use one of {', '.join(PATTERN_FIELDS)}")
        _check_paging(limit, offset)
        await self.initialize()

        if field == "slug" and not pattern.startswith(("/", "*", "?", "[")):
            pattern = "/" + pattern

        union = f"""
            SELECT 'page' AS type, id, title, slug, content, created_at, last_updated
            FROM page WHERE {field} GLOB ?
            UNION ALL
            SELECT 'database', id, title, slug, NULL, created_at, last_updated
            FROM "database" WHERE {field} GLOB ?
        """
        params: List[object] = [pattern, pattern]
        if field == "title":
            union += """
            UNION ALL
            SELECT 'database_page', id, title, NULL, content, created_at, last_updated
            FROM database_page WHERE title GLOB ?
            """
            params.append(pattern)

        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(f"SELECT COUNT(*) FROM ({union})", params) as cursor:
                total_count = (await cursor.fetchone())[0]

            async with db.execute(
                f"SELECT * FROM ({union}) ORDER BY {field} ASC, id ASC LIMIT ? OFFSET ?",
                [*params, limit, offset],
            ) as cursor:
                rows = await cursor.fetchall()

        results = [
            SearchResult(
                type=row["type"],
                id=row["id"],
                title=row["title"],
                slug=row["slug"],
                created_at=row["created_at"],
                last_updated=row["last_updated"],
                content=row["content"] if include_content else None,
            )
            for row in rows
        ]

        return ResultPage(
            results=results,
            total_count=total_count,
            has_more=offset + limit < total_count,
        )

    async def get_by_slug(self, slug: str) -> Optional[Union[PageRecord, DatabaseRecord]]:
        """
        Get a page or database by slug, checking pages first.

        Args:
            slug: Full slug, e.g. "/projects/notes"

        Returns:
            PageRecord, DatabaseRecord or None if not found
        """
        await self.initialize()

        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                """
                SELECT id, title, content, slug, created_at, last_updated
                FROM page WHERE slug = ?
                """,
                (slug,),
            ) as cursor:
                row = await cursor.fetchone()

            if row:
                return PageRecord(
                    id=row["id"],
                    title=row["title"],
                    content=row["content"],
                    slug=row["slug"],
                    created_at=row["created_at"],
                    last_updated=row["last_updated"],
                )

            async with db.execute(
                """
                SELECT id, title, slug, properties, created_at, last_updated
                FROM "database" WHERE slug = ?
                """,
                (slug,),
            ) as cursor:
                row = await cursor.fetchone()

        if row:
            return DatabaseRecord(
                id=row["id"],
                title=row["title"],
                slug=row["slug"],
                properties=json.loads(row["properties"]),
                created_at=row["created_at"],
                last_updated=row["last_updated"],
            )
        return None

    async def get_database_pages(self, database_id: str) -> List[DatabasePageRecord]:
        """
        Get all stored rows of a database.

        Args:
            database_id: Database ID

        Returns:
            List of DatabasePageRecord ordered by creation time
        """
        await self.initialize()

        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                """
                SELECT id, database_id, title, properties, content, created_at, last_updated
                FROM database_page WHERE database_id = ?
                ORDER BY created_at ASC, id ASC
                """,
                (database_id,),
            ) as cursor:
                rows = await cursor.fetchall()

        return [
            DatabasePageRecord(
                id=row["id"],
                properties=json.loads(row["properties"]),
                content=row["content"],
                created_at=row["created_at"],
                last_updated=row["last_updated"],
                title=row["title"],
                database_id=row["database_id"],
            )
            for row in rows
        ]

    async def list_all_slugs(self) -> List[str]:
        """
        Get every assigned slug of pages and databases.

        Returns:
            Sorted list of slugs
        """
        await self.initialize()

        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute(
                """
                SELECT slug FROM page WHERE slug IS NOT NULL
                UNION
                SELECT slug FROM "database" WHERE slug IS NOT NULL
                ORDER BY slug
                """
            ) as cursor:
                rows = await cursor.fetchall()

        return [row[0] for row in rows]

    async def get_counts(self) -> Dict[str, int]:
        """Get the number of stored rows per table."""
        await self.initialize()

        counts = {}
        async with aiosqlite.connect(self.db_path) as db:
            for table in ("page", "database", "database_page"):
                async with db.execute(f'SELECT COUNT(*) FROM "{table}"') as cursor:
                    counts[table] = (await cursor.fetchone())[0]
        return counts
