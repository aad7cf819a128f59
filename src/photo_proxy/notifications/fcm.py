"""Firebase Cloud Messaging push sender."""

from __future__ import annotations

import asyncio
import json
from typing import Any

import firebase_admin
from firebase_admin import credentials, messaging

from .notifier import PushMessage, PushSender


class FcmPushSender(PushSender):
    """Send push messages through an explicitly initialized Firebase app."""

    def __init__(self, app: Any) -> None:
        self._app = app

    @classmethod
    def from_service_account_json(cls, raw: str, *, name: str = "photo-proxy") -> "FcmPushSender":
        """Reuse the named Firebase app when this process already initialized it."""
        try:
            app = firebase_admin.get_app(name)
        except ValueError:
            certificate = credentials.Certificate(json.loads(raw))
            app = firebase_admin.initialize_app(certificate, name=name)
        return cls(app)

    async def send(self, message: PushMessage) -> None:
        payload = messaging.Message(
            token=message.token,
            notification=messaging.Notification(title=message.title, body=message.body),
            data=message.data,
            apns=messaging.APNSConfig(
                payload=messaging.APNSPayload(
                    aps=messaging.Aps(content_available=True, sound="default")
                )
            ),
        )
        await asyncio.to_thread(messaging.send, payload, app=self._app)
