"""WhatsApp webhook and outbound message routes."""

import asyncio
import json

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import PlainTextResponse

from web.deps import get_config, get_whatsapp_client
from web.models import TextMessage
from whatsapp import verify_webhook_signature

logger = structlog.get_logger()

router = APIRouter(prefix="/api/whatsapp", tags=["whatsapp"])


@router.get("/webhook", response_class=PlainTextResponse)
async def verify_subscription(
    mode: str = Query(..., alias="hub.mode"),
    token: str = Query(..., alias="hub.verify_token"),
    challenge: str = Query(..., alias="hub.challenge"),
    config=Depends(get_config),
):
    """Subscription handshake: echo the challenge when the verify token matches."""
    expected = config.whatsapp.verify_token
    if mode != "subscribe" or not expected or token != expected:
        raise HTTPException(status_code=403, detail="Verification failed")
    return challenge


@router.post("/webhook")
async def receive_webhook(request: Request, config=Depends(get_config)):
    secret = config.whatsapp.app_secret
    payload = await request.body()
    signature = request.headers.get("x-hub-signature-256")
    if not secret or not verify_webhook_signature(payload, signature, secret):
        logger.warning("whatsapp.webhook_bad_signature")
        raise HTTPException(status_code=403, detail="Invalid signature")

    try:
        body = json.loads(payload)
    except json.JSONDecodeError:
        raise HTTPException(status_code=400, detail="Body is not valid JSON")

    messages = 0
    for entry in body.get("entry", []) if isinstance(body, dict) else []:
        for change in entry.get("changes", []):
            messages += len(change.get("value", {}).get("messages", []))
    logger.info("whatsapp.webhook_received", messages=messages)
    return {"status": "received", "messages": messages}


@router.post("/send")
async def send_text(body: TextMessage, client=Depends(get_whatsapp_client)):
    if client is None:
        raise HTTPException(status_code=503, detail="WhatsApp is not configured")
    # send_text blocks on HTTP and may retry
    result = await asyncio.to_thread(client.send_text, body.to, body.body)
    if not result["success"]:
        raise HTTPException(status_code=502, detail=result.get("error"))
    return result
