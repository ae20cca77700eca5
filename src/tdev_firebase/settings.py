"""
Firebase Settings Schema.

Provides the Pydantic model that configures how the adapters connect to a
Firebase project. Values may come from keyword arguments, a settings mapping
(typically loaded from YAML) or environment variables.

Example YAML:
    settings:
      firebase:
        project_id: "my-project"
        database_url: "https://my-project-default-rtdb.firebaseio.com"
        credentials_path: "/secrets/service-account.json"
        firestore_emulator_host: "localhost:8080"
        database_emulator_host: "localhost:9000"

Environment Variables:
    FIREBASE_PROJECT_ID: Default project ID
    FIREBASE_DATABASE_URL: Realtime Database URL
    GOOGLE_APPLICATION_CREDENTIALS: Path to service account JSON file
    FIRESTORE_EMULATOR_HOST: Firestore emulator address
    FIREBASE_DATABASE_EMULATOR_HOST: Realtime Database emulator address
    FCM_REGISTRATION_TOKEN: Device registration token for Cloud Messaging
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from pydantic import BaseModel, Field, field_validator

DEFAULT_APP_NAME = "[DEFAULT]"

# field name -> environment variable used when the field is not given
ENV_FALLBACKS: Dict[str, str] = {
    "project_id": "FIREBASE_PROJECT_ID",
    "database_url": "FIREBASE_DATABASE_URL",
    "credentials_path": "GOOGLE_APPLICATION_CREDENTIALS",
    "firestore_emulator_host": "FIRESTORE_EMULATOR_HOST",
    "database_emulator_host": "FIREBASE_DATABASE_EMULATOR_HOST",
    "registration_token": "FCM_REGISTRATION_TOKEN",
}


class FirebaseSettings(BaseModel):
    """
    Connection settings for the Firebase adapters.

    Only the fields relevant to a given adapter are used by it: the Realtime
    Database needs database_url, Cloud Messaging uses registration_token.
    Everything else is passed straight to firebase_admin.initialize_app().

    Attributes:
        project_id: Google Cloud / Firebase project ID
        database_url: Realtime Database URL
        credentials_path: Path to a service account JSON file
        app_name: Name of the firebase_admin App to reuse or create
        firestore_emulator_host: Firestore emulator address (host:port)
        database_emulator_host: Realtime Database emulator address (host:port)
        registration_token: FCM registration token of the target device

    Example:
        >>> settings = FirebaseSettings(project_id="demo", app_name="tests")
        >>> settings.app_name
        'tests'
    """

    project_id: Optional[str] = Field(
        default=None,
        description="Firebase project ID",
    )

    database_url: Optional[str] = Field(
        default=None,
        description="Realtime Database URL",
    )

    credentials_path: Optional[str] = Field(
        default=None,
        description="Path to service account JSON file",
    )

    app_name: str = Field(
        default=DEFAULT_APP_NAME,
        description="firebase_admin App name",
    )

    firestore_emulator_host: Optional[str] = Field(
        default=None,
        description="Firestore emulator address (host:port)",
    )

    database_emulator_host: Optional[str] = Field(
        default=None,
        description="Realtime Database emulator address (host:port)",
    )

    registration_token: Optional[str] = Field(
        default=None,
        description="FCM registration token of the target device",
    )

    model_config = {"frozen": True, "extra": "forbid"}

    @field_validator("app_name", mode="before")
    @classmethod
    def validate_app_name(cls, v):
        """Treat empty app names as the default app."""
        if v is None or (isinstance(v, str) and not v.strip()):
            return DEFAULT_APP_NAME
        return v

    @field_validator(
        "project_id",
        "database_url",
        "credentials_path",
        "firestore_emulator_host",
        "database_emulator_host",
        "registration_token",
        mode="before",
    )
    @classmethod
    def blank_to_none(cls, v):
        """Map empty strings (e.g. "${VAR:-}" expansions) to None."""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @property
    def is_emulator(self) -> bool:
        """True if any emulator host is configured."""
        return bool(self.firestore_emulator_host or self.database_emulator_host)

    def app_options(self) -> Dict[str, Any]:
        """Options dictionary for firebase_admin.initialize_app()."""
        options: Dict[str, Any] = {}
        if self.project_id:
            options["projectId"] = self.project_id
        if self.database_url:
            options["databaseURL"] = self.database_url
        return options

    @classmethod
    def from_env(cls, **overrides: Any) -> "FirebaseSettings":
        """
        Build settings from environment variables.

        Explicit keyword arguments win over the environment; arguments
        passed as None fall back to the matching variable.

        Example:
            >>> settings = FirebaseSettings.from_env(project_id="explicit")
        """
        values: Dict[str, Any] = {}
        for field_name, env_var in ENV_FALLBACKS.items():
            value = overrides.get(field_name)
            if value is None:
                value = os.environ.get(env_var)
            if value is not None:
                values[field_name] = value
        if overrides.get("app_name") is not None:
            values["app_name"] = overrides["app_name"]
        return cls(**values)


def parse_firebase_settings(config: Dict[str, Any]) -> Optional[FirebaseSettings]:
    """
    Parse Firebase settings from a configuration dictionary.

    Args:
        config: Settings dictionary with an optional 'firebase' key.

    Returns:
        FirebaseSettings if the 'firebase' key is present, None otherwise.

    Raises:
        ValueError: If the 'firebase' section is not a mapping or contains
            invalid values.

    Example:
        >>> settings = parse_firebase_settings({"firebase": {"project_id": "p"}})
        >>> settings.project_id
        'p'
    """
    firebase_config = config.get("firebase")
    if firebase_config is None:
        return None

    if not isinstance(firebase_config, dict):
        raise ValueError(
            f"'firebase' settings must be a mapping, got {type(firebase_config).__name__}"
        )

    # pydantic.ValidationError is a ValueError subclass
    return FirebaseSettings(**firebase_config)


def load_settings_file(path: Union[str, Path]) -> FirebaseSettings:
    """
    Load settings from a YAML file, with environment fallbacks.

    Accepts either a top-level 'firebase' key or the 'settings: firebase:'
    layout. Fields missing from the file fall back to the environment.

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the YAML is invalid or has the wrong shape
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Settings file not found: {path}")

    try:
        content = yaml.safe_load(path.read_text()) or {}
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in settings file {path}: {e}")

    if not isinstance(content, dict):
        raise ValueError(f"Settings file {path} must contain a mapping")

    section = content.get("settings", content)
    if not isinstance(section, dict):
        raise ValueError(f"'settings' in {path} must be a mapping")

    parsed = parse_firebase_settings(section)
    if parsed is None:
        return FirebaseSettings.from_env()
    return FirebaseSettings.from_env(**parsed.model_dump(exclude_none=True))
