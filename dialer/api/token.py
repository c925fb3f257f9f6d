"""Browser calling token endpoint."""
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from twilio.jwt.access_token import AccessToken
from twilio.jwt.access_token.grants import VoiceGrant

from dialer.core.config import Settings
from dialer.core.dependencies import get_settings

router = APIRouter()
logger = logging.getLogger(__name__)

# Single agent seat
AGENT_IDENTITY = "agent"


def create_access_token(settings: Settings, identity: str = AGENT_IDENTITY) -> str:
    """Create a Twilio Voice SDK access token that may place calls through the TwiML app."""
    token = AccessToken(
        settings.twilio_account_sid,
        settings.twilio_api_key,
        settings.twilio_api_secret,
        identity=identity,
    )
    token.add_grant(
        VoiceGrant(
            outgoing_application_sid=settings.twilio_twiml_app_sid,
            incoming_allow=True,
        )
    )
    return token.to_jwt()


@router.get("/token")
async def get_token(settings: Settings = Depends(get_settings)):
    """Issue an access token for the browser dialer."""
    if not (
        settings.twilio_api_key
        and settings.twilio_api_secret
        and settings.twilio_twiml_app_sid
    ):
        logger.error("[TOKEN] Missing Twilio API key, secret or TwiML app SID")
        return JSONResponse(status_code=500, content={"error": "Missing Twilio configuration"})

    return {"token": create_access_token(settings)}
