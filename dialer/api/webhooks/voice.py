"""Twilio voice webhook endpoints."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Form, Query, Request
from fastapi.responses import Response

from dialer.core.config import Settings
from dialer.core.dependencies import get_base_url, get_settings, get_status_ingestion
from dialer.services.call_session.ingestion import StatusIngestionService
from dialer.services.telephony.twiml import TwiMLService, build_callback_url

router = APIRouter()
logger = logging.getLogger(__name__)


def parse_sequence_number(value: Optional[str]) -> Optional[int]:
    """Parse Twilio's SequenceNumber; anything unusable means "no ordering signal"."""
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning(f"[CALL STATUS] Ignoring non-integer SequenceNumber: {value!r}")
        return None


@router.post("/voice")
async def handle_outbound_voice(
    request: Request,
    To: Optional[str] = Form(None),
    leadId: Optional[str] = Form(None),
    base_url: str = Depends(get_base_url),
    settings: Settings = Depends(get_settings),
):
    """
    Handle the browser leg connecting to Twilio.

    Dials the lead and attaches a status callback whose URL carries the
    lead id, so the child leg's CallSid can be correlated with the lead.
    """
    logger.info(
        f"[VOICE] Outbound call requested - To: {To}, LeadId: {leadId}, "
        f"Client: {request.client.host if request.client else 'unknown'}"
    )
    twiml_service = TwiMLService()

    if not To:
        logger.warning("[VOICE] No phone number provided")
        return Response(
            content=twiml_service.generate_say("No phone number provided."),
            media_type="application/xml",
        )

    if not leadId:
        logger.warning(f"[VOICE] No leadId provided, status events won't be correlated - To: {To}")

    status_callback_url = build_callback_url(base_url, "/twilio/status", leadId=leadId)
    twiml = twiml_service.generate_outbound_dial(
        to=To,
        status_callback_url=status_callback_url,
        caller_id=settings.twilio_caller_id,
    )
    logger.debug(f"[VOICE] Dial TwiML with status callback: {status_callback_url}")
    return Response(content=twiml, media_type="application/xml")


@router.post("/status")
async def handle_call_status(
    request: Request,
    leadId: Optional[str] = Query(None),
    CallSid: Optional[str] = Form(None),
    CallStatus: Optional[str] = Form(None),
    SequenceNumber: Optional[str] = Form(None),
    ingestion: StatusIngestionService = Depends(get_status_ingestion),
):
    """
    Handle call status updates from Twilio.

    Always acknowledges, so Twilio never retries a report we couldn't use.
    """
    logger.info(
        f"[CALL STATUS] Received status update - LeadId: {leadId}, CallSid: {CallSid}, "
        f"CallStatus: {CallStatus}, SequenceNumber: {SequenceNumber}, "
        f"Client: {request.client.host if request.client else 'unknown'}"
    )

    try:
        outcome = await ingestion.apply_status(
            leadId,
            CallSid,
            CallStatus,
            sequence=parse_sequence_number(SequenceNumber),
        )
        logger.debug(f"[CALL STATUS] Outcome: {outcome.value} - LeadId: {leadId}, CallSid: {CallSid}")
    except Exception as e:
        logger.error(
            f"[CALL STATUS] Error handling call status update - LeadId: {leadId}, "
            f"CallSid: {CallSid}, CallStatus: {CallStatus}, Error: {type(e).__name__}: {str(e)}",
            exc_info=True,
        )

    # Still return OK to Twilio to avoid retries
    return Response(content="OK", media_type="text/plain")
