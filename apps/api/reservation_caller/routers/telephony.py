"""Twilio webhooks: call status, answered calls, speech turns and inbound callbacks."""
from __future__ import annotations

import logging
from urllib.parse import quote

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from twilio.request_validator import RequestValidator
from twilio.twiml.voice_response import VoiceResponse

from ..core.config import get_settings
from ..core.errors import CallNotFoundError
from ..dependencies import get_call_service
from ..services.calls import CallService

logger = logging.getLogger(__name__)

router = APIRouter()

VOICE = "alice"
LISTENING = "I am listening."


async def read_form(request: Request) -> dict[str, str]:
    form = await request.form()
    return {key: str(value) for key, value in form.items()}


async def verify_twilio_signature(request: Request) -> None:
    """Reject webhook requests that Twilio did not sign, when Twilio is configured."""

    config = get_settings()
    if not config.has_twilio_config:
        return

    signature = request.headers.get("X-Twilio-Signature", "")
    url = f"{config.app_base_url.rstrip('/')}{request.url.path}"
    if request.url.query:
        url = f"{url}?{request.url.query}"
    params = await read_form(request)
    if not signature or not RequestValidator(config.twilio_auth_token).validate(url, params, signature):
        logger.warning("Rejected webhook with invalid Twilio signature for %s", request.url.path)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid Twilio signature")


def _twiml(vr: VoiceResponse) -> Response:
    return Response(content=str(vr), media_type="text/xml")


def _gather_url(path: str, call_id: str, **extra: object) -> str:
    query = f"callId={quote(call_id, safe='')}"
    for key, value in extra.items():
        query += f"&{key}={value}"
    return f"/api/telephony/{path}?{query}"


@router.post("/status", dependencies=[Depends(verify_twilio_signature)])
async def status_callback(
    request: Request,
    call_id: str = Query(default="", alias="callId"),
    service: CallService = Depends(get_call_service),
) -> dict[str, object]:
    """Map a provider status callback onto the call lifecycle."""

    form = await read_form(request)
    call_id = call_id or form.get("callId", "")
    provider_status = form.get("CallStatus") or form.get("status") or ""
    if not call_id or not provider_status:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="callId and status required")

    try:
        mapped = await service.handle_status_callback(call_id, provider_status, form.get("CallSid"))
    except CallNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return {"ok": True, "mapped": mapped.value}


@router.post("/voice", dependencies=[Depends(verify_twilio_signature)])
async def voice(
    request: Request,
    call_id: str = Query(default="", alias="callId"),
    service: CallService = Depends(get_call_service),
) -> Response:
    """Answered outbound call: leave a voicemail or open the conversation."""

    form = await read_form(request)
    try:
        result = await service.handle_answered(call_id, form.get("AnsweredBy"))
    except CallNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unknown call") from exc

    vr = VoiceResponse()
    for line in result.lines:
        vr.say(line, voice=VOICE)
    if result.voicemail:
        vr.hangup()
        return _twiml(vr)

    gather = vr.gather(input="speech", speech_timeout="auto", action=_gather_url("gather", call_id), method="POST")
    gather.say(LISTENING, voice=VOICE)
    vr.say("Sorry, I did not catch that.", voice=VOICE)
    vr.redirect(_gather_url("voice", call_id), method="POST")
    return _twiml(vr)


@router.post("/gather", dependencies=[Depends(verify_twilio_signature)])
async def gather(
    request: Request,
    call_id: str = Query(default="", alias="callId"),
    service: CallService = Depends(get_call_service),
) -> Response:
    """One captured business utterance."""

    form = await read_form(request)
    try:
        result = await service.handle_business_reply(call_id, form.get("SpeechResult"))
    except CallNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unknown call") from exc

    vr = VoiceResponse()
    vr.say(result.say, voice=VOICE)
    if result.continue_listening:
        follow_up = vr.gather(
            input="speech",
            speech_timeout="auto",
            action=_gather_url("gather", call_id),
            method="POST",
        )
        follow_up.say(LISTENING, voice=VOICE)
    else:
        vr.hangup()
    return _twiml(vr)


@router.post("/inbound", dependencies=[Depends(verify_twilio_signature)])
async def inbound(request: Request, service: CallService = Depends(get_call_service)) -> Response:
    """Someone called our number back."""

    form = await read_form(request)
    result = await service.handle_inbound_callback(form.get("From"), form.get("To"), form.get("CallSid") or None)

    vr = VoiceResponse()
    vr.say(result.greeting, voice=VOICE)
    prompt = vr.gather(
        input="speech",
        speech_timeout="3",
        timeout=8,
        action_on_empty_result=True,
        action=_gather_url("inbound-gather", result.call.id, attempt=1),
        method="POST",
    )
    prompt.say(result.prompt, voice=VOICE)
    vr.say("Sorry, I did not catch that. Please call back and try again.", voice=VOICE)
    vr.hangup()
    return _twiml(vr)


@router.post("/inbound-gather", dependencies=[Depends(verify_twilio_signature)])
async def inbound_gather(
    request: Request,
    call_id: str = Query(default="", alias="callId"),
    attempt: int = Query(default=1, ge=1),
    service: CallService = Depends(get_call_service),
) -> Response:
    """The message left by someone calling back."""

    form = await read_form(request)
    vr = VoiceResponse()
    try:
        result = await service.handle_inbound_message(call_id, form.get("SpeechResult"), attempt)
    except CallNotFoundError:
        vr.say("Sorry, we could not process your callback. Please try again later.", voice=VOICE)
        vr.hangup()
        return _twiml(vr)

    vr.say(result.say, voice=VOICE)
    if result.continue_listening:
        retry = vr.gather(
            input="speech",
            speech_timeout="3",
            timeout=8,
            action_on_empty_result=True,
            action=_gather_url("inbound-gather", call_id, attempt=attempt + 1),
            method="POST",
        )
        retry.say(LISTENING, voice=VOICE)
        vr.say("Still no message captured. Please call back and try again.", voice=VOICE)
    vr.hangup()
    return _twiml(vr)
