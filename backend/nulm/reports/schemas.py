"""Pydantic schemas for abuse reports.

These schemas are used by:
    - POST /chat/report: Direct report submission
    - GET /reports/{address}: Direct ban lookup
    - GET /admin/reports: Human-readable listing
    - ReportStore: DuckDB storage layer
"""
from typing import List, Optional

from pydantic import BaseModel, Field


class ReportEntry(BaseModel):
    """One past report against an address.

    Attributes:
        nickname: Nickname the reported participant had at the time.
        reason: Comma-joined canonical reason codes.
        timestamp: Local time the report was recorded (``YY-MM-DD HH:MM:SS``).
    """
    nickname: str = Field(default="Unknown", description="Reported nickname")
    reason: str = Field(default="", description="Canonical reason codes")
    timestamp: str = Field(default="", description="When the report was recorded")


class ReportRecord(BaseModel):
    """Persisted abuse counter and history for one network address.

    The ban state is never stored; call :meth:`is_banned` with the configured
    threshold every time it is needed.
    """
    address: str = Field(..., description="Normalized network address")
    reportCount: int = Field(default=0, ge=0, description="Cumulative report count")
    userIP: str = Field(default="", description="Last known address")
    history: List[ReportEntry] = Field(default_factory=list)
    nickname: Optional[str] = Field(default=None, description="Latest reported nickname")
    reason: Optional[str] = Field(default=None, description="Latest reason codes")
    timestamp: Optional[str] = Field(default=None, description="Latest report time")

    def is_banned(self, threshold: int) -> bool:
        return self.reportCount >= threshold


class ReportOutcome(BaseModel):
    """Result of recording one report.

    Attributes:
        record: The record as stored after the call.
        recorded: False when the incident had already been recorded.
    """
    record: ReportRecord
    recorded: bool = True


class ReportSubmitRequest(BaseModel):
    """Request body for a direct report submission.

    Every field is optional at the schema level so that a missing field is
    reported as a 400 with the service's own message rather than a 422.
    """
    roomId: Optional[str] = None
    partnerNickname: Optional[str] = None
    partnerIP: Optional[str] = None
    reasons: Optional[List[str]] = None


class ReportSubmitResponse(BaseModel):
    success: bool
    message: str
    reportCount: Optional[int] = None
    banned: Optional[bool] = None


class ReportLookupResponse(BaseModel):
    address: str
    reportCount: int
    banned: bool
    history: List[ReportEntry] = Field(default_factory=list)
