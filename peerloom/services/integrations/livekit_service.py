"""LiveKit helper service.

This module provides a thin wrapper around the `livekit-api` package for the
parts of the RTC provider the live classroom uses: access tokens, room
teardown when the host ends a session, and webhook verification.

Usage:
    from peerloom.services.integrations.livekit_service import livekit_service

    token = livekit_service.create_access_token(
        identity="user-123",
        room="group-1",
        name="Jane",
        can_publish=False,
    )
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import timedelta

from livekit import api
from loguru import logger

from peerloom.app_config import AppEnvironConfig, get_app_environ_config
from peerloom.utils.app_errors import AppError, AppErrorCode, HttpStatusCode


class LivekitService:
    """Service wrapper for the LiveKit server SDK (livekit-api package)."""

    def __init__(self, cfg: AppEnvironConfig | None = None) -> None:
        self._cfg = cfg or get_app_environ_config()
        self._demo_mode = bool(self._cfg.DEMO_MODE)
        logger.info("LivekitService initialized (demo_mode={})", self._demo_mode)

    @property
    def demo_mode(self) -> bool:
        return self._demo_mode

    def _credentials(self) -> tuple[str, str]:
        api_key = self._cfg.LIVEKIT_API_KEY
        api_secret = self._cfg.LIVEKIT_API_SECRET
        if not api_key or not api_secret:
            logger.error("LIVEKIT_API_KEY or LIVEKIT_API_SECRET not configured")
            raise AppError(
                errcode=AppErrorCode.E_RTC_NOT_CONFIGURED,
                errmesg="RTC provider credentials must be configured. Set them in env.local or environment variables.",
                status_code=HttpStatusCode.SERVICE_UNAVAILABLE,
            )
        return api_key, api_secret

    @asynccontextmanager
    async def _get_api_client(self) -> AsyncIterator[api.LiveKitAPI]:
        """Internal method to get a LiveKit API client.

        Raises:
            AppError: If LIVEKIT_URL is not configured
        """
        url = self._cfg.LIVEKIT_URL
        if not url:
            logger.error("LIVEKIT_URL not configured")
            raise AppError(
                errcode=AppErrorCode.E_RTC_NOT_CONFIGURED,
                errmesg="RTC provider URL must be configured. Set it in env.local or environment variables.",
                status_code=HttpStatusCode.SERVICE_UNAVAILABLE,
            )

        api_key, api_secret = self._credentials()
        async with api.LiveKitAPI(url, api_key, api_secret) as lkapi:
            yield lkapi

    def create_access_token(
        self,
        identity: str,
        room: str,
        name: str | None = None,
        can_publish: bool = True,
        can_subscribe: bool = True,
        can_publish_data: bool = True,
        room_admin: bool = False,
    ) -> str:
        """Create and return a LiveKit JWT access token.

        Args:
            identity: Unique identity for the participant (the user id)
            room: Room name, which is the group id
            name: Display name for the participant (optional)
            can_publish: Grant permission to publish tracks
            can_subscribe: Grant permission to subscribe to tracks
            can_publish_data: Grant permission to publish data
            room_admin: Grant admin privileges in the room (the host)

        Returns:
            JWT token string

        Raises:
            AppError: If LiveKit credentials are not configured
        """
        if self._demo_mode:
            # Demo-safe token: deterministic placeholder (NOT a real JWT).
            mode = "pub" if can_publish else "sub"
            return f"DEMO_RTC_TOKEN::{identity}::{room}::{mode}"

        api_key, api_secret = self._credentials()

        logger.info(
            "Creating LiveKit access token for identity={}, room={}, can_publish={}", identity, room, can_publish
        )

        token = (
            api.AccessToken(api_key, api_secret)
            .with_identity(identity)
            .with_ttl(timedelta(seconds=self._cfg.RTC_TOKEN_TTL_SECONDS))
        )
        if name:
            token = token.with_name(name)

        grants = api.VideoGrants(
            room_join=True,
            room=room,
            room_admin=room_admin,
            can_publish=can_publish,
            can_subscribe=can_subscribe,
            can_publish_data=can_publish_data,
        )
        return token.with_grants(grants).to_jwt()

    async def delete_room(self, room_name: str) -> None:
        """Delete a LiveKit room, disconnecting everyone in it.

        A room that does not exist is not an error.
        """
        if self._demo_mode:
            logger.info("LivekitService DEMO_MODE=true: delete_room {} skipped (stub)", room_name)
            return

        logger.info("Deleting LiveKit room: room_name={}", room_name)
        async with self._get_api_client() as lkapi:
            try:
                await lkapi.room.delete_room(api.DeleteRoomRequest(room=room_name))
            except Exception as e:
                if "not_found" in str(e) or "does not exist" in str(e):
                    logger.info("LiveKit room already deleted or not found: name={}", room_name)
                else:
                    raise

    def verify_webhook(self, body: str, authorization: str | None) -> None:
        """Check the webhook signature.

        Raises:
            AppError: If the signature is missing or invalid
        """
        if self._demo_mode:
            return

        api_key, api_secret = self._credentials()
        if not authorization:
            raise AppError(
                errcode=AppErrorCode.E_WEBHOOK_BAD_SIGNATURE,
                errmesg="Missing webhook authorization",
                status_code=HttpStatusCode.UNAUTHORIZED,
            )

        receiver = api.WebhookReceiver(api.TokenVerifier(api_key, api_secret))
        try:
            receiver.receive(body, authorization)
        except Exception as e:
            logger.warning("LiveKit webhook signature rejected: {}", e)
            raise AppError(
                errcode=AppErrorCode.E_WEBHOOK_BAD_SIGNATURE,
                errmesg="Invalid webhook signature",
                status_code=HttpStatusCode.UNAUTHORIZED,
            ) from e


livekit_service = LivekitService()
