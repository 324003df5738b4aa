import logging
import secrets
from dataclasses import dataclass
from typing import Annotated, Optional

import firebase_admin
from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from firebase_admin import auth as firebase_auth
from firebase_admin import credentials
from sqlalchemy.ext.asyncio import AsyncSession

from render_orchestrator.config import Settings, get_settings
from render_orchestrator.exceptions import RenderFarmNotConfiguredError, StreamNotConfiguredError
from render_orchestrator.models.database import get_db
from render_orchestrator.services.media_fetcher import MediaFetcher
from render_orchestrator.services.render_farm_client import RenderFarmClient
from render_orchestrator.services.stream_client import StreamClient

logger = logging.getLogger(__name__)

# Initialize Firebase Admin SDK lazily
_firebase_app = None


def get_firebase_app(settings: Settings) -> firebase_admin.App:
    global _firebase_app
    if _firebase_app is None:
        try:
            _firebase_app = firebase_admin.get_app()
        except ValueError:
            # App not initialized yet
            if settings.firebase_project_id:
                cred = credentials.ApplicationDefault()
                _firebase_app = firebase_admin.initialize_app(
                    cred, {"projectId": settings.firebase_project_id}
                )
            else:
                _firebase_app = firebase_admin.initialize_app()
    return _firebase_app


# Use auto_error=False so the shared-secret header and dev token can stand in
security = HTTPBearer(auto_error=False)

DEV_TOKEN = "dev-token"

SettingsDep = Annotated[Settings, Depends(get_settings)]


@dataclass
class Caller:
    """Who is calling: a signed-in user, or a service holding the shared secret."""

    kind: str  # "user", "service" or "dev"
    uid: str | None = None


async def require_caller(
    settings: SettingsDep,
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
    x_api_key: Annotated[Optional[str], Header(alias="X-Api-Key")] = None,
) -> Caller:
    """Authenticate the caller.

    Authentication priority:
    1. X-Api-Key header matching the shared secret (service-to-service)
    2. Authorization: Bearer <token> (Firebase ID token)
    3. dev-token bypass (dev_mode only)
    """
    if x_api_key is not None and settings.api_secret_key:
        if secrets.compare_digest(x_api_key, settings.api_secret_key):
            return Caller(kind="service")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
        )

    token = credentials.credentials if credentials else None

    if settings.dev_mode and (token == DEV_TOKEN or token is None):
        return Caller(kind="dev")

    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        get_firebase_app(settings)
        decoded_token = firebase_auth.verify_id_token(token)
    except Exception as e:
        logger.warning(f"Token verification failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid authentication token: {e}",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return Caller(kind="user", uid=decoded_token["uid"])


def get_render_farm_client(settings: SettingsDep) -> RenderFarmClient:
    if not settings.render_farm_configured:
        raise RenderFarmNotConfiguredError()
    return RenderFarmClient(settings)


def get_stream_client(settings: SettingsDep) -> StreamClient:
    if not settings.stream_configured:
        raise StreamNotConfiguredError()
    return StreamClient(settings)


def get_media_fetcher(settings: SettingsDep) -> MediaFetcher:
    return MediaFetcher(settings)


CurrentCaller = Annotated[Caller, Depends(require_caller)]
DbSession = Annotated[AsyncSession, Depends(get_db)]
FarmClient = Annotated[RenderFarmClient, Depends(get_render_farm_client)]
StreamDep = Annotated[StreamClient, Depends(get_stream_client)]
MediaFetcherDep = Annotated[MediaFetcher, Depends(get_media_fetcher)]
