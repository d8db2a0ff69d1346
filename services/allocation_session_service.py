"""
Allocation session service.

Keeps in-progress allocation sessions in process memory with TTL expiration.
A session is discarded when cancelled, after a submission attempt, or once
it has been idle longer than the TTL, so the next read always starts from
freshly fetched data.
"""

import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import uuid4

import structlog

from config import settings
from exceptions import AllocationSessionNotFoundError, SubmissionBlockedError
from models.allocation import AllocationSnapshot, AllocationState, CreateAllocationSessionRequest
from models.submission import BatchSubmissionReport
from models.workflow import WorkflowStage
from services.allocation_service import apply_event, start_allocation, summarize_group
from services.order_grouping_service import (
    OrderGroupingService,
    find_group,
    get_order_grouping_service,
)
from services.submission_service import assemble_submissions, submit_batch

logger = structlog.get_logger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class _Session:
    session_id: str
    stage: WorkflowStage
    created_at: datetime
    expires_at: datetime
    state: AllocationState


class AllocationSessionService:
    """Registry of allocation sessions."""

    def __init__(
        self,
        grouping_service: Optional[OrderGroupingService] = None,
        ttl_minutes: Optional[int] = None,
    ):
        self.grouping_service = grouping_service or get_order_grouping_service()
        if ttl_minutes is None:
            ttl_minutes = settings.allocation_session_ttl_minutes
        self.ttl = timedelta(minutes=ttl_minutes)
        self._sessions: dict[str, _Session] = {}
        self._lock = threading.Lock()

    def _cleanup_expired(self) -> None:
        """Remove all expired sessions. Caller holds the lock."""
        now = _now()
        expired = [sid for sid, s in self._sessions.items() if now >= s.expires_at]
        for sid in expired:
            del self._sessions[sid]
        if expired:
            logger.info("allocation_sessions_expired", count=len(expired))

    def _get(self, session_id: str) -> _Session:
        """Live session by id. Caller holds the lock."""
        session = self._sessions.get(session_id)
        if session is None:
            raise AllocationSessionNotFoundError(session_id)
        if _now() >= session.expires_at:
            del self._sessions[session_id]
            logger.info("allocation_session_expired", session_id=session_id)
            raise AllocationSessionNotFoundError(session_id)
        return session

    def _snapshot(self, session: _Session) -> AllocationSnapshot:
        state = session.state
        return AllocationSnapshot(
            session_id=session.session_id,
            stage=session.stage,
            created_at=session.created_at,
            state=state,
            errors_by_line=state.errors_by_line,
            notices_by_line=state.notices_by_line,
            budgets_by_group={
                group.group_id: summarize_group(state, group) for group in state.groups
            },
            can_submit=state.can_submit,
        )

    def create_session(self, request: CreateAllocationSessionRequest) -> AllocationSnapshot:
        """
        Open a session over freshly fetched groups.

        Raises:
            OrderGroupNotFoundError: If a group id is not pending at this stage
        """
        customers = self.grouping_service.get_customer_groups(request.stage)
        group_ids = list(dict.fromkeys(request.group_ids))
        groups = [find_group(customers, group_id) for group_id in group_ids]

        created_at = _now()
        session = _Session(
            session_id=str(uuid4()),
            stage=request.stage,
            created_at=created_at,
            expires_at=created_at + self.ttl,
            state=start_allocation(groups, select_all=request.select_all),
        )
        with self._lock:
            self._cleanup_expired()
            self._sessions[session.session_id] = session

        logger.info(
            "allocation_session_created",
            session_id=session.session_id,
            stage=request.stage.value,
            groups=len(groups)
        )
        return self._snapshot(session)

    def get_snapshot(self, session_id: str) -> AllocationSnapshot:
        """Current view of a session."""
        with self._lock:
            session = self._get(session_id)
        return self._snapshot(session)

    def apply(self, session_id: str, event) -> AllocationSnapshot:
        """
        Apply one allocation event.

        The stored state is replaced only when the event applies cleanly.
        Every applied event restarts the session's TTL.
        """
        with self._lock:
            session = self._get(session_id)
            session.state = apply_event(session.state, event)
            session.expires_at = _now() + self.ttl

        logger.debug(
            "allocation_event_applied",
            session_id=session_id,
            event_type=event.type,
            errors=len(session.state.errors_by_line)
        )
        return self._snapshot(session)

    def submit(self, session_id: str, gateway=None) -> BatchSubmissionReport:
        """
        Submit the session and discard it.

        Raises:
            SubmissionBlockedError: If any selected line is not eligible or
                nothing is selected; the session is kept for correction
        """
        with self._lock:
            session = self._get(session_id)
            state = session.state

            if not state.can_submit:
                raise SubmissionBlockedError(state.blocked_lines)

            batch = assemble_submissions(state, session.stage)
            self._sessions.pop(session_id, None)

        report = submit_batch(batch, gateway or self.grouping_service.gateway)
        logger.info(
            "allocation_session_submitted",
            session_id=session_id,
            summary=report.summary
        )
        return report

    def cancel(self, session_id: str) -> None:
        """Discard a session without submitting."""
        with self._lock:
            self._get(session_id)
            del self._sessions[session_id]
        logger.info("allocation_session_cancelled", session_id=session_id)


# Singleton
_allocation_session_service: Optional[AllocationSessionService] = None


def get_allocation_session_service() -> AllocationSessionService:
    """Get the singleton allocation session service instance."""
    global _allocation_session_service
    if _allocation_session_service is None:
        _allocation_session_service = AllocationSessionService()
    return _allocation_session_service
