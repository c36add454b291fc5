"""
FastAPI routes for Birdwatch.

Provides the OAuth consent flow, Gmail watch registration, and the Pub/Sub
push endpoint that runs the message pipeline.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional
from urllib.parse import quote, unquote

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from fastapi.responses import PlainTextResponse, RedirectResponse
from pydantic import ValidationError

from .. import services
from ..config.settings import AppConfig
from ..core.errors import UnknownIdentity
from ..core.gmail_client import GmailClient
from ..core.oauth_manager import OAuthClient, Session, SessionManager
from ..core.pipeline import MessagePipeline
from ..models.schemas import HealthResponse, PubSubPushEnvelope

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Birdwatch"])

GENERIC_ERROR = "Something went wrong; check the logs."


def get_config() -> AppConfig:
    return services.get_config()


def get_oauth_client() -> OAuthClient:
    try:
        return services.get_oauth_client()
    except ValueError as e:
        logger.error(f"OAuth configuration error: {e}")
        raise HTTPException(status_code=503, detail="Google OAuth is not configured")


def get_session_manager() -> SessionManager:
    try:
        return services.get_session_manager()
    except ValueError as e:
        logger.error(f"OAuth configuration error: {e}")
        raise HTTPException(status_code=503, detail="Google OAuth is not configured")


def get_pipeline() -> MessagePipeline:
    try:
        return services.get_pipeline()
    except ValueError as e:
        logger.error(f"Pipeline configuration error: {e}")
        raise HTTPException(status_code=503, detail="Google OAuth is not configured")


def get_gmail_factory() -> Callable[[Session], GmailClient]:
    return services.get_gmail_client


@router.get("/oauth2init")
def oauth2init(oauth_client: OAuthClient = Depends(get_oauth_client)):
    """
    Request an OAuth 2.0 authorization code.

    Only new users (or those who want to refresh their auth data) need
    visit this page.
    """
    return RedirectResponse(url=oauth_client.authorization_url(), status_code=302)


@router.get("/oauth2callback")
def oauth2callback(
    code: Optional[str] = Query(None, description="Authorization code from Google"),
    error: Optional[str] = Query(None, description="Error from OAuth provider"),
    session_manager: SessionManager = Depends(get_session_manager),
    gmail_factory: Callable[[Session], GmailClient] = Depends(get_gmail_factory)
):
    """
    Exchange the authorization code for tokens and store them.

    Redirects to /initWatch for the authorized mailbox.
    """
    if error:
        logger.error(f"OAuth callback received error: {error}")
        return PlainTextResponse(f"Authorization failed: {error}", status_code=400)
    if not code:
        return PlainTextResponse("No authorization code specified.", status_code=400)

    try:
        session = session_manager.authorize(
            code,
            profile_lookup=lambda s: gmail_factory(s).get_profile_email()
        )
    except Exception as e:
        logger.error(f"OAuth callback failed: {e}", exc_info=True)
        return PlainTextResponse(GENERIC_ERROR, status_code=500)

    logger.info(f"OAuth tokens stored for {session.identity}")
    return RedirectResponse(
        url=f"/initWatch?emailAddress={quote(session.identity, safe='')}",
        status_code=302
    )


@router.get("/initWatch")
def init_watch(
    emailAddress: Optional[str] = Query(None, description="Mailbox to watch"),
    config: AppConfig = Depends(get_config),
    session_manager: SessionManager = Depends(get_session_manager),
    gmail_factory: Callable[[Session], GmailClient] = Depends(get_gmail_factory)
):
    """Initialize a watch on the user's inbox."""
    if not emailAddress:
        return PlainTextResponse("No emailAddress specified.", status_code=400)
    email = unquote(emailAddress)
    if '@' not in email:
        return PlainTextResponse("Invalid emailAddress.", status_code=400)

    try:
        session = session_manager.resolve_session(email)
        gmail_factory(session).watch(
            topic_name=config.topic_name,
            label_ids=config.gmail.watch_label_ids
        )
    except UnknownIdentity:
        return RedirectResponse(url="/oauth2init", status_code=302)
    except Exception as e:
        logger.error(f"Failed to initialize watch for {email}: {e}", exc_info=True)
        return PlainTextResponse(GENERIC_ERROR, status_code=500)

    return PlainTextResponse("Watch initialized!", status_code=200)


@router.post("/onNewMessage", status_code=204)
async def on_new_message(
    request: Request,
    pipeline: MessagePipeline = Depends(get_pipeline)
):
    """
    Process new messages as they are received (Pub/Sub push).

    Always acknowledges; failures are logged by the pipeline and not redelivered.
    A body that is not a push envelope is handled as an empty payload.
    """
    body = await request.body()
    try:
        envelope = PubSubPushEnvelope.model_validate_json(body)
    except ValidationError as e:
        logger.error(f"Malformed push envelope: {e}")
        envelope = PubSubPushEnvelope()

    result = await pipeline.handle_event(envelope.message.data)
    logger.debug(f"Pipeline result: {result.to_dict()}")
    return Response(status_code=204)


@router.get("/health", response_model=HealthResponse)
def health_check(config: AppConfig = Depends(get_config)) -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(
        status="healthy",
        service="birdwatch",
        oauth_configured=config.oauth.is_configured,
        timestamp=datetime.now(timezone.utc).isoformat()
    )
