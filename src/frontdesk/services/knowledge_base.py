import asyncio
import re
import sqlite3
from pathlib import Path
from typing import Optional, List, Iterable
from datetime import datetime

from frontdesk.core.logging import get_plain_logger
from frontdesk.models.schemas import KnowledgeEntry, Provenance

logger = get_plain_logger(__name__)

SCHEMA_PATH = Path(__file__).resolve().parent.parent / "database" / "knowledge_base.sql"

STOPWORDS = {
    'a', 'an', 'the', 'is', 'are', 'was', 'were', 'what', 'when', 'where',
    'who', 'why', 'how', 'can', 'could', 'would', 'should', 'do', 'does',
    'did', 'you', 'your', 'i', 'me', 'my', 'we', 'our', 'get', 'have', 'has',
    'much', 'and', 'for', 'with', 'that', 'this', 'there', 'any', 'about',
    'please', 'tell', 'know', 'will', 'from', 'they', 'them', 'its',
}

_PUNCTUATION = re.compile(r"[^\w\s]")

ENTRY_COLUMNS = """
    id, question, answer, category, provenance, source_request_id,
    usage_count, last_used_at, is_active, created_at, updated_at
"""

INITIAL_KNOWLEDGE = [
    {
        "question": "What are your business hours?",
        "answer": "We are open Monday through Friday, 9 AM to 6 PM EST.",
        "category": "Hours",
        "keywords": ["hours", "open", "time", "schedule"],
    },
    {
        "question": "Where are you located?",
        "answer": "Our office is located at 123 Main Street, Suite 100, New York, NY 10001.",
        "category": "Location",
        "keywords": ["location", "address", "office", "where"],
    },
    {
        "question": "How can I contact support?",
        "answer": "You can reach our support team at support@frontdesk.com or call us at (555) 123-4567.",
        "category": "Contact",
        "keywords": ["contact", "support", "email", "phone", "help"],
    },
    {
        "question": "What services do you offer?",
        "answer": (
            "We offer AI-powered receptionist services, call handling, "
            "appointment scheduling, and customer support automation."
        ),
        "category": "Services",
        "keywords": ["services", "offer", "provide", "do"],
    },
]


def extract_keywords(text: str) -> List[str]:
    """
    Normalize free text into match keywords

    Lowercase, strip punctuation, split on whitespace, drop stop-words and
    tokens of two characters or fewer. Order of first appearance is kept and
    duplicates are removed, so the result is deterministic.
    """
    words = _PUNCTUATION.sub("", text.lower()).split()
    keywords = [w for w in words if len(w) > 2 and w not in STOPWORDS]
    return list(dict.fromkeys(keywords))


def _now() -> str:
    return datetime.now().isoformat(sep=" ")


class KnowledgeBaseService:
    """
    Knowledge store of reusable question/answer pairs

    Lexical relevance runs on an SQLite FTS5 index, keyword fallback on a
    normalized keyword table. Every write is a single statement or a single
    transaction so concurrent sessions never lose updates.
    """

    def __init__(self, db_path: str = "frontdesk_data.db"):
        self.db_path = db_path
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=10)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self):
        """Apply schema (idempotent)"""
        conn = self._connect()
        try:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.executescript(SCHEMA_PATH.read_text(encoding="utf-8"))
            conn.commit()
        finally:
            conn.close()
        logger.info("Knowledge base tables initialized")

    # Writes

    def insert_entry(
        self,
        cursor: sqlite3.Cursor,
        question: str,
        answer: str,
        provenance: Provenance,
        category: Optional[str] = None,
        source_request_id: Optional[int] = None,
        keywords: Optional[Iterable[str]] = None,
    ) -> int:
        """
        Insert an entry using the caller's cursor

        Lets the help request lifecycle write learned knowledge inside its own
        resolve transaction. Does not commit.
        """
        question = (question or "").strip()
        answer = (answer or "").strip()
        if not question or not answer:
            raise ValueError("question and answer are required")

        if keywords is None:
            keywords = extract_keywords(f"{question} {answer}")
        else:
            keywords = list(dict.fromkeys(k.strip().lower() for k in keywords if k.strip()))

        now = _now()
        cursor.execute(
            """
            INSERT INTO knowledge_base
            (question, answer, category, provenance, source_request_id, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (question, answer, category, Provenance(provenance).value, source_request_id, now, now),
        )
        entry_id = cursor.lastrowid
        cursor.executemany(
            "INSERT OR IGNORE INTO knowledge_keywords (entry_id, keyword) VALUES (?, ?)",
            [(entry_id, k) for k in keywords],
        )
        return entry_id

    async def add_answer(
        self,
        question: str,
        answer: str,
        provenance: Provenance = Provenance.MANUAL,
        category: Optional[str] = None,
        source_request_id: Optional[int] = None,
        keywords: Optional[Iterable[str]] = None,
    ) -> KnowledgeEntry:
        """
        Add a new entry to the knowledge base

        Args:
            question: Customer question the entry answers
            answer: Answer to speak back
            provenance: SUPERVISOR, MANUAL or INITIAL
            category: Topic label (hours, location, ...)
            source_request_id: Help request this entry was learned from
            keywords: Explicit keyword set, derived from question+answer if omitted

        Returns:
            The stored entry
        """
        entry_id = await asyncio.to_thread(
            self._write_entry, question, answer, provenance, category, source_request_id, keywords
        )
        logger.info(f"✨ Added KB entry #{entry_id} [{Provenance(provenance).value}]: {question}")
        return await asyncio.to_thread(self.get_entry, entry_id)

    def _write_entry(self, question, answer, provenance, category, source_request_id, keywords) -> int:
        conn = self._connect()
        try:
            entry_id = self.insert_entry(
                conn.cursor(), question, answer, provenance,
                category=category,
                source_request_id=source_request_id,
                keywords=keywords,
            )
            conn.commit()
        finally:
            conn.close()
        return entry_id

    def record_usage(self, entry_id: int) -> Optional[KnowledgeEntry]:
        """
        Atomically count one successful match

        The increment is a single conditional UPDATE, so concurrent matches on
        the same entry never lose updates. Returns None when the entry was
        deactivated or removed in the meantime.
        """
        conn = self._connect()
        try:
            cursor = conn.cursor()
            now = _now()
            cursor.execute(
                """
                UPDATE knowledge_base
                SET usage_count = usage_count + 1,
                    last_used_at = ?,
                    updated_at = ?
                WHERE id = ? AND is_active = 1
                """,
                (now, now, entry_id),
            )
            if cursor.rowcount == 0:
                conn.commit()
                return None
            row = cursor.execute(
                f"SELECT {ENTRY_COLUMNS} FROM knowledge_base WHERE id = ?", (entry_id,)
            ).fetchone()
            entry = self._row_to_entry(cursor, row)
            conn.commit()
            return entry
        finally:
            conn.close()

    def deactivate_answer(self, entry_id: int) -> bool:
        """Soft delete - mark answer as inactive"""
        conn = self._connect()
        try:
            cursor = conn.execute(
                """
                UPDATE knowledge_base
                SET is_active = 0,
                    updated_at = ?
                WHERE id = ?
                """,
                (_now(), entry_id),
            )
            conn.commit()
            changed = cursor.rowcount > 0
        finally:
            conn.close()
        if changed:
            logger.info(f"Deactivated KB entry #{entry_id}")
        return changed

    def seed_initial_knowledge(self) -> int:
        """Insert the starter entries when the store is empty"""
        if self.count_entries() > 0:
            return 0

        conn = self._connect()
        try:
            cursor = conn.cursor()
            for item in INITIAL_KNOWLEDGE:
                self.insert_entry(
                    cursor,
                    item["question"],
                    item["answer"],
                    Provenance.INITIAL,
                    category=item["category"],
                    keywords=item["keywords"],
                )
            conn.commit()
        finally:
            conn.close()

        logger.info(f"✅ Initial knowledge base seeded ({len(INITIAL_KNOWLEDGE)} entries)")
        return len(INITIAL_KNOWLEDGE)

    # Reads

    def text_search(self, question: str, limit: int = 5) -> List[KnowledgeEntry]:
        """Active entries ranked by FTS5 bm25 relevance against the question"""
        terms = extract_keywords(question)
        if not terms:
            return []
        match_query = " OR ".join(f'"{t}"' for t in terms)

        conn = self._connect()
        try:
            cursor = conn.cursor()
            rows = cursor.execute(
                """
                SELECT kb.id, kb.question, kb.answer, kb.category, kb.provenance,
                       kb.source_request_id, kb.usage_count, kb.last_used_at,
                       kb.is_active, kb.created_at, kb.updated_at
                FROM knowledge_fts
                JOIN knowledge_base kb ON kb.id = knowledge_fts.rowid
                WHERE knowledge_fts MATCH ?
                AND kb.is_active = 1
                ORDER BY bm25(knowledge_fts), kb.usage_count DESC
                LIMIT ?
                """,
                (match_query, limit),
            ).fetchall()
            return [self._row_to_entry(cursor, r) for r in rows]
        finally:
            conn.close()

    def keyword_search(self, keywords: List[str], limit: int = 3) -> List[KnowledgeEntry]:
        """Active entries whose keyword set intersects the given keywords"""
        if not keywords:
            return []
        placeholders = ", ".join("?" for _ in keywords)

        conn = self._connect()
        try:
            cursor = conn.cursor()
            rows = cursor.execute(
                f"""
                SELECT {ENTRY_COLUMNS}
                FROM knowledge_base
                WHERE is_active = 1
                AND id IN (
                    SELECT entry_id FROM knowledge_keywords
                    WHERE keyword IN ({placeholders})
                )
                ORDER BY usage_count DESC, id ASC
                LIMIT ?
                """,
                (*keywords, limit),
            ).fetchall()
            return [self._row_to_entry(cursor, r) for r in rows]
        finally:
            conn.close()

    def get_entry(self, entry_id: int) -> Optional[KnowledgeEntry]:
        conn = self._connect()
        try:
            cursor = conn.cursor()
            row = cursor.execute(
                f"SELECT {ENTRY_COLUMNS} FROM knowledge_base WHERE id = ?", (entry_id,)
            ).fetchone()
            return self._row_to_entry(cursor, row) if row else None
        finally:
            conn.close()

    def get_all_learned_answers(
        self,
        limit: int = 50,
        category: Optional[str] = None,
        active_only: bool = True
    ) -> List[KnowledgeEntry]:
        """Get learned answers for admin UI, newest first"""
        clauses = []
        params: list = []
        if active_only:
            clauses.append("is_active = 1")
        if category:
            clauses.append("category = ?")
            params.append(category)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        conn = self._connect()
        try:
            cursor = conn.cursor()
            rows = cursor.execute(
                f"""
                SELECT {ENTRY_COLUMNS}
                FROM knowledge_base
                {where}
                ORDER BY created_at DESC, id DESC
                LIMIT ?
                """,
                (*params, limit),
            ).fetchall()
            return [self._row_to_entry(cursor, r) for r in rows]
        finally:
            conn.close()

    def get_entries_by_request(self, request_id: int) -> List[KnowledgeEntry]:
        """Entries learned from a given help request"""
        conn = self._connect()
        try:
            cursor = conn.cursor()
            rows = cursor.execute(
                f"SELECT {ENTRY_COLUMNS} FROM knowledge_base WHERE source_request_id = ? ORDER BY id",
                (request_id,),
            ).fetchall()
            return [self._row_to_entry(cursor, r) for r in rows]
        finally:
            conn.close()

    def count_entries(self, provenance: Optional[Provenance] = None) -> int:
        conn = self._connect()
        try:
            if provenance:
                row = conn.execute(
                    "SELECT COUNT(*) FROM knowledge_base WHERE provenance = ?",
                    (Provenance(provenance).value,),
                ).fetchone()
            else:
                row = conn.execute("SELECT COUNT(*) FROM knowledge_base").fetchone()
            return row[0]
        finally:
            conn.close()

    def get_category_stats(self) -> dict:
        """Get KB statistics grouped by category"""
        conn = self._connect()
        try:
            rows = conn.execute("""
                SELECT
                    category,
                    COUNT(*) as total,
                    SUM(usage_count) as total_uses
                FROM knowledge_base
                WHERE is_active = 1
                GROUP BY category
                ORDER BY total_uses DESC
            """).fetchall()
        finally:
            conn.close()

        return {
            r["category"] or "uncategorized": {
                "total_entries": r["total"],
                "total_uses": r["total_uses"] or 0,
            }
            for r in rows
        }

    @staticmethod
    def _row_to_entry(cursor: sqlite3.Cursor, row: sqlite3.Row) -> KnowledgeEntry:
        keywords = [
            k[0] for k in cursor.execute(
                "SELECT keyword FROM knowledge_keywords WHERE entry_id = ? ORDER BY rowid",
                (row["id"],),
            ).fetchall()
        ]
        return KnowledgeEntry(
            id=row["id"],
            question=row["question"],
            answer=row["answer"],
            category=row["category"],
            keywords=keywords,
            provenance=row["provenance"],
            source_request_id=row["source_request_id"],
            usage_count=row["usage_count"],
            last_used_at=row["last_used_at"],
            active=bool(row["is_active"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
