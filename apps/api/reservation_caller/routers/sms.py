"""Outbound SMS and the Twilio messaging webhooks."""
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from twilio.twiml.messaging_response import MessagingResponse

from ..core.errors import OutboundSmsError, SmsUnavailableError
from ..dependencies import get_sms_relay
from ..schemas import calls as schemas
from ..services.sms import SmsRelay
from .telephony import read_form, verify_twilio_signature

router = APIRouter()


@router.post("/sms/send", response_model=schemas.SendSmsResponse)
async def send_sms(
    payload: schemas.SendSmsRequest,
    relay: SmsRelay = Depends(get_sms_relay),
) -> schemas.SendSmsResponse:
    try:
        sent = await relay.send(payload.to, payload.message, payload.from_)
    except SmsUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except OutboundSmsError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    return schemas.SendSmsResponse(sid=sent.sid, status=sent.status)


@router.post("/telephony/sms", dependencies=[Depends(verify_twilio_signature)])
async def inbound_sms(request: Request, relay: SmsRelay = Depends(get_sms_relay)) -> Response:
    """Forward an inbound text to the operator; nothing is sent back."""

    form = await read_form(request)
    await relay.handle_inbound(form.get("From"), form.get("To"), form.get("Body"), form.get("MessageSid"))
    return Response(content=str(MessagingResponse()), media_type="text/xml")


@router.post("/telephony/sms-status", dependencies=[Depends(verify_twilio_signature)])
async def sms_status(request: Request, relay: SmsRelay = Depends(get_sms_relay)) -> dict[str, bool]:
    form = await read_form(request)
    relay.handle_status(form.get("MessageSid"), form.get("SmsStatus"), form.get("From"), form.get("To"))
    return {"ok": True}
