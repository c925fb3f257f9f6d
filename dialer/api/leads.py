"""Lead endpoints: lead list, voicemail drop and transfer-leg callbacks."""
import json
import logging
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Form, Query, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from dialer.core.dependencies import (
    get_base_url,
    get_lead_repository,
    get_leg_relay,
    get_redirect_executor,
)
from dialer.services.leads.base import Lead
from dialer.services.leads.repository import LeadRepository
from dialer.services.notifications.relay import LegNotificationRelay
from dialer.services.redirect.errors import RedirectError
from dialer.services.redirect.executor import RedirectExecutor
from dialer.services.telephony.twiml import TwiMLService

router = APIRouter()
logger = logging.getLogger(__name__)

FORM_CONTENT_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


class DropVoicemailRequest(BaseModel):
    """Voicemail drop request from the dialer UI."""

    lead_id: Optional[str] = Field(default=None, alias="leadId")
    lead_name: Optional[str] = Field(default=None, alias="leadName")
    lead_phone: Optional[str] = Field(default=None, alias="leadPhone")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("lead_id", "lead_name", "lead_phone", mode="before")
    @classmethod
    def coerce_to_str(cls, value):
        if value is None or isinstance(value, str):
            return value
        # The UI sends numeric lead ids unquoted
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        raise ValueError(f"expected a string or number, got {type(value).__name__}")


async def read_drop_request(request: Request) -> DropVoicemailRequest:
    """
    Read a drop request from a JSON or form-encoded body.

    A body that isn't a usable object reads as an empty request, which the
    executor then rejects as a missing lead id.
    """
    content_type = request.headers.get("content-type", "")
    try:
        if content_type.startswith(FORM_CONTENT_TYPES):
            data = dict(await request.form())
        else:
            body = await request.body()
            data = json.loads(body) if body.strip() else {}
        if not isinstance(data, dict):
            raise ValueError(f"body is a JSON {type(data).__name__}, not an object")
        return DropVoicemailRequest.model_validate(data)
    except (ValueError, ValidationError) as e:
        logger.warning(f"[DROP VM] Unusable request body - ContentType: {content_type}, Error: {str(e)}")
        return DropVoicemailRequest()


@router.get("/leads", response_model=List[Lead])
async def list_leads(
    lead_repository: LeadRepository = Depends(get_lead_repository),
):
    """Get all leads."""
    leads = await lead_repository.list_leads()
    logger.debug(f"[LEADS] Returning {len(leads)} leads")
    return leads


@router.post("/leads/drop-voicemail")
async def drop_voicemail(
    request: Request,
    payload: DropVoicemailRequest = Depends(read_drop_request),
    base_url: str = Depends(get_base_url),
    executor: RedirectExecutor = Depends(get_redirect_executor),
):
    """Redirect the lead's live call to the voice bot."""
    logger.info(
        f"[DROP VM] Request received - LeadId: {payload.lead_id}, LeadName: {payload.lead_name}, "
        f"Client: {request.client.host if request.client else 'unknown'}"
    )

    try:
        await executor.drop_to_automation(
            payload.lead_id,
            display_name=payload.lead_name,
            callee_phone=payload.lead_phone,
            base_url=base_url,
        )
    except RedirectError as e:
        logger.warning(
            f"[DROP VM] Voicemail drop rejected - LeadId: {payload.lead_id}, "
            f"Reason: {type(e).__name__}: {e.message}"
        )
        return JSONResponse(status_code=e.status_code, content={"error": e.message})
    except Exception as e:
        logger.error(
            f"[DROP VM] Error dropping voicemail - LeadId: {payload.lead_id}, "
            f"Error: {type(e).__name__}: {str(e)}",
            exc_info=True,
        )
        return JSONResponse(status_code=500, content={"error": "Failed to drop voicemail"})

    return {"success": True, "message": "Voicemail drop triggered"}


@router.post("/leads/dial-status")
async def handle_dial_status(
    DialCallStatus: Optional[str] = Form(None),
    name: Optional[str] = Query(None),
):
    """
    Handle the <Dial> action callback when the transfer leg ends.

    Hangs up the original leg; the session was already cleared by the drop.
    """
    logger.info(f"[DIAL STATUS] Transfer to voice bot ended - Name: {name}, DialCallStatus: {DialCallStatus}")
    return Response(content=TwiMLService().generate_hangup(), media_type="application/xml")


@router.post("/leads/transfer-notify")
async def handle_transfer_notify(
    background_tasks: BackgroundTasks,
    CallSid: Optional[str] = Form(None),
    leadPhone: Optional[str] = Query(None),
    relay: LegNotificationRelay = Depends(get_leg_relay),
):
    """
    Report the transfer leg's CallSid to the automation webhook.

    Serves both the <Number url> and the statusCallback hook, so it answers
    with an empty TwiML document either way. The relay runs after the response.
    """
    logger.info(f"[TRANSFER NOTIFY] Transfer leg reported - CallSid: {CallSid}, LeadPhone: {leadPhone}")

    if CallSid:
        background_tasks.add_task(relay.notify, CallSid, leadPhone)
    else:
        logger.warning(f"[TRANSFER NOTIFY] Missing CallSid, nothing to relay - LeadPhone: {leadPhone}")

    return Response(content=TwiMLService().generate_empty(), media_type="application/xml")
