import asyncio
import sqlite3
from pathlib import Path
from typing import Optional, List
from datetime import datetime

from frontdesk.core.exceptions import HelpRequestNotFound, InvalidTransition
from frontdesk.core.logging import get_plain_logger
from frontdesk.models.schemas import HelpRequest, HelpRequestStats, Provenance, RequestStatus
from frontdesk.services.knowledge_base import KnowledgeBaseService

logger = get_plain_logger(__name__)

SCHEMA_PATH = Path(__file__).resolve().parent.parent / "database" / "help_requests.sql"

REQUEST_COLUMNS = """
    id, customer_phone, customer_name, question, context, status,
    supervisor_response, supervisor_name, responded_at, session_key,
    created_at, updated_at
"""


def _now() -> str:
    return datetime.now().isoformat(sep=" ")


class HelpRequestService:
    """
    Manages help requests from AI to human supervisor

    PENDING is the only non-terminal state. Resolving as RESOLVED writes the
    supervisor's answer back into the knowledge base in the same transaction.
    """

    def __init__(self, kb: KnowledgeBaseService, db_path: Optional[str] = None):
        self.kb = kb
        self.db_path = db_path or kb.db_path
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=10)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self):
        conn = self._connect()
        try:
            conn.executescript(SCHEMA_PATH.read_text(encoding="utf-8"))
            conn.commit()
        finally:
            conn.close()
        logger.info("Help request tables initialized")

    async def create_request(
        self,
        customer_phone: str,
        question: str,
        customer_name: Optional[str] = None,
        context: Optional[str] = None,
        session_key: Optional[str] = None,
    ) -> HelpRequest:
        """
        Create new help request in PENDING

        Duplicate escalations for the same phone/question are kept as
        separate requests.
        """
        if not customer_phone or not customer_phone.strip():
            raise ValueError("customer_phone is required")
        if not question or not question.strip():
            raise ValueError("question is required")

        request_id = await asyncio.to_thread(
            self._insert_request, customer_phone, question, customer_name, context, session_key
        )

        logger.info(f"📝 Created help request #{request_id}: {question[:50]}...")
        self._notify_supervisor(request_id, question, customer_phone, customer_name)
        return await asyncio.to_thread(self.get_request, request_id)

    def _insert_request(self, customer_phone, question, customer_name, context, session_key) -> int:
        now = _now()
        conn = self._connect()
        try:
            cursor = conn.execute(
                """
                INSERT INTO help_requests
                (customer_phone, customer_name, question, context, status,
                 session_key, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    customer_phone.strip(),
                    customer_name,
                    question.strip(),
                    context,
                    RequestStatus.PENDING.value,
                    session_key,
                    now,
                    now,
                ),
            )
            request_id = cursor.lastrowid
            conn.commit()
        finally:
            conn.close()
        return request_id

    def _notify_supervisor(
        self, request_id: int, question: str, customer_phone: str, customer_name: Optional[str]
    ):
        """Supervisor alert, delivered as a log line"""
        logger.warning(
            f"🔔 NEW HELP REQUEST #{request_id} from {customer_name or 'caller'} "
            f"({customer_phone}) at {datetime.now().strftime('%I:%M %p')}: {question}"
        )

    async def resolve_request(
        self,
        request_id: int,
        supervisor_response: str,
        supervisor_name: str,
        resolved: bool = True,
    ) -> HelpRequest:
        """
        Supervisor answers a pending help request

        Raises:
            ValueError: response or supervisor name missing
            HelpRequestNotFound: no request with this id
            InvalidTransition: request already RESOLVED or UNRESOLVED
        """
        if not supervisor_response or not supervisor_response.strip():
            raise ValueError("supervisor_response is required")
        if not supervisor_name or not supervisor_name.strip():
            raise ValueError("supervisor_name is required")

        new_status = RequestStatus.RESOLVED if resolved else RequestStatus.UNRESOLVED
        kb_id = await asyncio.to_thread(
            self._apply_resolution, request_id, new_status, supervisor_response, supervisor_name
        )

        if kb_id:
            logger.info(f"📚 Learned KB entry #{kb_id} from request #{request_id}")
        logger.info(f"✅ Request #{request_id} marked {new_status.value} by {supervisor_name}")

        request = await asyncio.to_thread(self.get_request, request_id)
        if resolved:
            self._follow_up_with_customer(request)
        return request

    def _apply_resolution(
        self,
        request_id: int,
        new_status: RequestStatus,
        supervisor_response: str,
        supervisor_name: str,
    ) -> Optional[int]:
        """Conditional PENDING transition plus knowledge write-back, one transaction"""
        kb_id = None
        conn = self._connect()
        try:
            cursor = conn.cursor()
            cursor.execute("BEGIN IMMEDIATE")

            row = cursor.execute(
                "SELECT question, status FROM help_requests WHERE id = ?", (request_id,)
            ).fetchone()
            if row is None:
                raise HelpRequestNotFound(request_id)
            if row["status"] != RequestStatus.PENDING.value:
                raise InvalidTransition(request_id, row["status"])

            now = _now()
            cursor.execute(
                """
                UPDATE help_requests
                SET status = ?,
                    supervisor_response = ?,
                    supervisor_name = ?,
                    responded_at = ?,
                    updated_at = ?
                WHERE id = ? AND status = ?
                """,
                (
                    new_status.value,
                    supervisor_response.strip(),
                    supervisor_name.strip(),
                    now,
                    now,
                    request_id,
                    RequestStatus.PENDING.value,
                ),
            )
            if cursor.rowcount != 1:
                raise InvalidTransition(request_id, row["status"])

            if new_status == RequestStatus.RESOLVED:
                kb_id = self.kb.insert_entry(
                    cursor,
                    row["question"],
                    supervisor_response,
                    Provenance.SUPERVISOR,
                    source_request_id=request_id,
                )

            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()
        return kb_id

    def _follow_up_with_customer(self, request: HelpRequest):
        """Text the supervisor's answer back to the caller, delivered as a log line"""
        greeting = request.customer_name or "there"
        logger.info(
            f"📱 FOLLOW-UP (Request #{request.id}) to {request.customer_phone}: "
            f"Hi {greeting}! You asked: '{request.question}'. {request.supervisor_response}"
        )

    def get_request(self, request_id: int) -> Optional[HelpRequest]:
        conn = self._connect()
        try:
            row = conn.execute(
                f"SELECT {REQUEST_COLUMNS} FROM help_requests WHERE id = ?", (request_id,)
            ).fetchone()
        finally:
            conn.close()
        return HelpRequest(**dict(row)) if row else None

    def get_pending_requests(self) -> List[HelpRequest]:
        """Get all pending help requests for admin UI"""
        return self.get_all_requests(RequestStatus.PENDING, limit=None)

    def get_all_requests(
        self,
        status: Optional[RequestStatus] = None,
        limit: Optional[int] = 100,
    ) -> List[HelpRequest]:
        """Get help requests newest first, optionally filtered by status"""
        query = f"SELECT {REQUEST_COLUMNS} FROM help_requests"
        params: list = []
        if status:
            query += " WHERE status = ?"
            params.append(RequestStatus(status).value)
        query += " ORDER BY created_at DESC, id DESC"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)

        conn = self._connect()
        try:
            rows = conn.execute(query, params).fetchall()
        finally:
            conn.close()
        return [HelpRequest(**dict(r)) for r in rows]

    def get_stats(self) -> HelpRequestStats:
        """Get statistics for dashboard"""
        conn = self._connect()
        try:
            row = conn.execute("""
                SELECT
                    COUNT(CASE WHEN status = 'PENDING' THEN 1 END) as pending,
                    COUNT(CASE WHEN status = 'RESOLVED' THEN 1 END) as resolved,
                    COUNT(CASE WHEN status = 'UNRESOLVED' THEN 1 END) as unresolved,
                    COUNT(*) as total
                FROM help_requests
            """).fetchone()
        finally:
            conn.close()

        total = row["total"] or 0
        resolved = row["resolved"] or 0
        return HelpRequestStats(
            pending=row["pending"] or 0,
            resolved=resolved,
            unresolved=row["unresolved"] or 0,
            total=total,
            resolution_rate=f"{resolved / total * 100:.1f}" if total > 0 else "0",
        )
