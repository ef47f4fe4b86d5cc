from fastapi import APIRouter, HTTPException, Depends
from livekit import api

from frontdesk.core.config import require_livekit_credentials
from frontdesk.core.dependencies import get_session_manager
from frontdesk.core.exceptions import SessionNotFound
from frontdesk.core.logging import get_plain_logger
from frontdesk.models.schemas import EndCallBody, SpeechBody, TokenRequest
from frontdesk.services.session import SessionManager

logger = get_plain_logger(__name__)

router = APIRouter(
    prefix="/api/livekit",
    tags=["Livekit agent"]
)


@router.post("/token")
async def generate_livekit_token(
    request: TokenRequest,
    manager: SessionManager = Depends(get_session_manager)
):
    """
    Generate LiveKit access token for phone simulator
    Joining a room starts a call, so the room's conversation is opened here
    """
    try:
        livekit_url, api_key, api_secret = require_livekit_credentials()
    except ValueError as e:
        raise HTTPException(status_code=500, detail=str(e))

    try:
        token = api.AccessToken(api_key, api_secret)
        token.with_identity(request.participantName)
        token.with_name(request.participantName)
        token.with_grants(api.VideoGrants(
            room_join=True,
            room=request.roomName,
            can_publish=True,
            can_subscribe=True,
        ))
        jwt_token = token.to_jwt()
    except Exception as e:
        logger.error(f"Error generating token: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    manager.open_session(
        request.roomName,
        request.customerPhone or "unknown",
        request.participantName
    )

    return {
        "success": True,
        "token": jwt_token,
        "url": livekit_url,
        "roomName": request.roomName
    }


@router.post("/process-speech")
async def process_speech(
    body: SpeechBody,
    manager: SessionManager = Depends(get_session_manager)
):
    """Run one recognized utterance through the conversation engine"""
    try:
        result = await manager.handle_utterance(body.roomName, body.speech)
        return {
            "success": True,
            **result.model_dump()
        }
    except SessionNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error processing speech for room {body.roomName}: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/end-call")
async def end_call(
    body: EndCallBody,
    manager: SessionManager = Depends(get_session_manager)
):
    """Clean up when call ends"""
    manager.close_session(body.roomName)
    return {"success": True}
