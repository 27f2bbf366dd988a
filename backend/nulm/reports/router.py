"""Report API endpoints.

Endpoints:
    POST /chat/report: Submit a report against a chat partner
    GET /reports/{address}: Look up one address's record and ban state
    GET /admin/reports: HTML listing of every reported address

Both the direct endpoint here and the in-room ``report-disconnected`` event
write to the same per-address record; recording is idempotent per
(room, reporter, reported) incident.
"""
import asyncio
import html
import logging

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse, JSONResponse

from nulm.chat.engine import get_engine
from nulm.chat.participant import client_address, normalize_ip

from .schemas import ReportLookupResponse, ReportSubmitRequest, ReportSubmitResponse
from .store import ReportStoreError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["reports"])


@router.post("/chat/report", response_model=ReportSubmitResponse)
async def submit_report(request: Request, body: ReportSubmitRequest):
    """Record a report against a chat partner.

    Returns:
        200 with the updated count and ban flag, 400 if any field is missing,
        500 if the report store fails.
    """
    if not body.roomId or not body.partnerNickname or not body.partnerIP or body.reasons is None:
        return JSONResponse(
            ReportSubmitResponse(success=False, message="Invalid report data.").model_dump(exclude_none=True),
            status_code=400,
        )

    reporter = client_address(request.headers, request.client)
    try:
        outcome = await get_engine().submit_report(
            reporter_address=reporter,
            room_id=body.roomId,
            partner_nickname=body.partnerNickname,
            partner_address=normalize_ip(body.partnerIP),
            reasons=body.reasons,
        )
    except ReportStoreError as exc:
        logger.error(f"[Reports] Error while processing report: {exc}")
        return JSONResponse(
            ReportSubmitResponse(
                success=False, message="An error occurred while processing the report."
            ).model_dump(exclude_none=True),
            status_code=500,
        )

    engine = get_engine()
    return ReportSubmitResponse(
        success=True,
        message="Your report has been received.",
        reportCount=outcome.record.reportCount,
        banned=outcome.record.is_banned(engine.ban_threshold),
    )


@router.get("/reports/{address}", response_model=ReportLookupResponse)
async def lookup_report(address: str):
    """Return the stored record for an address with a freshly computed ban flag."""
    engine = get_engine()
    address = normalize_ip(address)
    try:
        record = await asyncio.to_thread(engine.report_store.get_record, address)
    except ReportStoreError as exc:
        logger.error(f"[Reports] Lookup failed for {address}: {exc}")
        return JSONResponse({"error": "Report store unavailable"}, status_code=500)

    if record is None:
        return ReportLookupResponse(address=address, reportCount=0, banned=False)
    return ReportLookupResponse(
        address=address,
        reportCount=record.reportCount,
        banned=record.is_banned(engine.ban_threshold),
        history=record.history,
    )


_ADMIN_PAGE = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Admin Reports</title>
    <style>
        table {{ width: 100%; border-collapse: collapse; }}
        th, td {{ border: 1px solid #ddd; padding: 8px; text-align: left; }}
        th {{ background-color: #f2f2f2; }}
        .ip-cell {{ vertical-align: middle; text-align: center; }}
        .banned {{ color: #c00; font-weight: bold; }}
    </style>
</head>
<body>
    <h1>Reported Users</h1>
    <table>
        <thead>
            <tr><th>IP</th><th>Nickname</th><th>Reason</th><th>Timestamp</th><th>Count</th></tr>
        </thead>
        <tbody>
{rows}
        </tbody>
    </table>
</body>
</html>
"""


@router.get("/admin/reports", response_class=HTMLResponse)
async def admin_reports() -> HTMLResponse:
    """Render every stored record's history for human review."""
    engine = get_engine()
    try:
        records = await asyncio.to_thread(engine.report_store.list_records)
    except ReportStoreError as exc:
        logger.error(f"[Reports] Admin report page error: {exc}")
        return HTMLResponse("Internal Server Error", status_code=500)

    rows = []
    for record in records:
        if not record.history:
            continue
        ip = html.escape(record.userIP or record.address)
        css = "ip-cell banned" if record.is_banned(engine.ban_threshold) else "ip-cell"
        for index, entry in enumerate(record.history):
            ip_cell = (
                f'<td class="{css}" rowspan="{len(record.history)}">{ip}</td>' if index == 0 else ""
            )
            rows.append(
                "            <tr>"
                f"{ip_cell}"
                f"<td>{html.escape(entry.nickname or 'Unknown')}</td>"
                f"<td>{html.escape(entry.reason or 'N/A')}</td>"
                f"<td>{html.escape(entry.timestamp or 'N/A')}</td>"
                f"<td>{index + 1}</td>"
                "</tr>"
            )

    return HTMLResponse(_ADMIN_PAGE.format(rows="\n".join(rows)))
