"""
Firebase App Factory.

Resolves the firebase_admin App shared by the adapters. An App is looked up
by name first and only created when missing, so calling get_firebase_app()
repeatedly (or from several adapters at once) never creates a duplicate.

Credentials are resolved in this order:
    1. credentials_path, if the file exists
    2. no credentials when an emulator host is configured
    3. Application Default Credentials

Requirements:
    pip install firebase-admin
"""

import logging
import os
from threading import Lock
from typing import Any, Optional

import firebase_admin
from firebase_admin import credentials

from .settings import FirebaseSettings

logger = logging.getLogger(__name__)

_app_lock = Lock()


def _export_emulator_hosts(settings: FirebaseSettings) -> None:
    # The SDK reads these variables when a client is created
    if settings.firestore_emulator_host:
        os.environ["FIRESTORE_EMULATOR_HOST"] = settings.firestore_emulator_host
        logger.info(f"Using Firestore emulator at: {settings.firestore_emulator_host}")
    if settings.database_emulator_host:
        os.environ["FIREBASE_DATABASE_EMULATOR_HOST"] = settings.database_emulator_host
        logger.info(
            f"Using Realtime Database emulator at: {settings.database_emulator_host}"
        )


def _resolve_credential(settings: FirebaseSettings) -> Optional[Any]:
    if settings.credentials_path and os.path.exists(settings.credentials_path):
        logger.debug(f"Using credentials from: {settings.credentials_path}")
        return credentials.Certificate(settings.credentials_path)

    if settings.is_emulator:
        logger.debug("Using emulator without credentials")
        return None

    try:
        cred = credentials.ApplicationDefault()
        logger.debug("Using application default credentials")
        return cred
    except Exception as e:
        logger.warning(f"No credentials available: {e}")
        return None


def get_firebase_app(settings: Optional[FirebaseSettings] = None) -> Any:
    """
    Get the firebase_admin App named in settings, creating it if needed.

    Thread-safe: concurrent first calls create exactly one App.

    Args:
        settings: Connection settings. If None, resolved from the environment.

    Returns:
        firebase_admin.App instance

    Raises:
        ValueError: If firebase_admin rejects the options
        Exception: Any error raised by firebase_admin while initializing
    """
    settings = settings or FirebaseSettings.from_env()

    with _app_lock:
        _export_emulator_hosts(settings)

        try:
            app = firebase_admin.get_app(settings.app_name)
            logger.debug(f"Reusing existing Firebase app: {settings.app_name}")
            return app
        except ValueError:
            pass

        options = settings.app_options()
        app = firebase_admin.initialize_app(
            credential=_resolve_credential(settings),
            options=options or None,
            name=settings.app_name,
        )
        logger.info(
            f"Initialized Firebase app: {settings.app_name} "
            f"(project: {settings.project_id or 'default'})"
        )
        return app
