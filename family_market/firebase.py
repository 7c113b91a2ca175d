"""Firebase Admin access: one lazily-initialised app per process.

The ``FirebaseClients`` instance is built once by the app factory and
handed to the document store and the notification dispatcher. Credentials
are only read on first use, so a misconfigured deployment fails the
request that needs Firebase instead of refusing to boot.
"""

from __future__ import annotations

import logging
import threading
from typing import Any

import firebase_admin
from firebase_admin import credentials, firestore_async, messaging

from family_market.config import Settings
from family_market.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

_APP_NAME = "family-market"
_TOKEN_URI = "https://oauth2.googleapis.com/token"


class FirebaseClients:
    """Owns the Firebase Admin app and the clients derived from it."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._app: firebase_admin.App | None = None
        self._firestore = None
        self._lock = threading.Lock()

    def _credential(self) -> credentials.Base:
        s = self._settings
        if not s.firebase_project_id:
            raise ConfigurationError("FIREBASE_PROJECT_ID is not configured")
        if s.firebase_client_email and s.firebase_private_key:
            return credentials.Certificate(
                {
                    "type": "service_account",
                    "project_id": s.firebase_project_id,
                    "client_email": s.firebase_client_email,
                    # Keys pasted into env vars carry literal "\n" sequences
                    "private_key": s.firebase_private_key.replace("\\n", "\n"),
                    "token_uri": _TOKEN_URI,
                }
            )
        logger.info("Firebase service account not set, using Application Default Credentials")
        return credentials.ApplicationDefault()

    @property
    def app(self) -> firebase_admin.App:
        """Get or initialize the Firebase Admin app."""
        if self._app is not None:
            return self._app
        with self._lock:
            if self._app is None:
                try:
                    self._app = firebase_admin.get_app(_APP_NAME)
                except ValueError:
                    self._app = firebase_admin.initialize_app(
                        self._credential(),
                        {"projectId": self._settings.firebase_project_id},
                        name=_APP_NAME,
                    )
                    logger.info(
                        "Firebase Admin SDK initialized for project %s",
                        self._settings.firebase_project_id,
                    )
        return self._app

    @property
    def firestore(self) -> Any:
        """Async Firestore client bound to the app."""
        if self._firestore is None:
            self._firestore = firestore_async.client(self.app)
        return self._firestore

    def send_each_for_multicast(
        self, message: messaging.MulticastMessage
    ) -> messaging.BatchResponse:
        """Blocking multicast send (callers run it off the event loop)."""
        return messaging.send_each_for_multicast(message, app=self.app)
