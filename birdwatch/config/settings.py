"""
Configuration settings for Birdwatch.

Values come from environment variables, an optional YAML overrides file,
and the OAuth client secret file. Secrets fall back to Google Secret Manager.
"""

import os
import json
import yaml
import logging
from pathlib import Path
from dataclasses import dataclass, field
from typing import List, Dict, Optional, Any

logger = logging.getLogger(__name__)

# Secret Manager cache to avoid repeated API calls
_secrets_cache: Dict[str, str] = {}

GMAIL_SCOPES = [
    'https://www.googleapis.com/auth/gmail.modify'
]


def get_secret(secret_name: str, project_id: Optional[str] = None) -> Optional[str]:
    """
    Fetch a secret from Google Secret Manager.

    Args:
        secret_name: Name of the secret (e.g., 'birdwatch-oauth-client-secret')
        project_id: GCP project ID. If None, uses GCP_PROJECT_ID env var.

    Returns:
        Secret value as string, or None if not found.
    """
    if secret_name in _secrets_cache:
        return _secrets_cache[secret_name]

    # Allow environment variable override for local development
    env_override = os.getenv(secret_name.upper().replace('-', '_'))
    if env_override:
        _secrets_cache[secret_name] = env_override
        return env_override

    project = project_id or os.getenv('GCP_PROJECT_ID')
    if not project:
        logger.warning(f"No GCP project configured, cannot fetch secret '{secret_name}'")
        return None

    try:
        from google.cloud import secretmanager

        client = secretmanager.SecretManagerServiceClient()
        name = f"projects/{project}/secrets/{secret_name}/versions/latest"

        response = client.access_secret_version(request={"name": name})
        secret_value = response.payload.data.decode("UTF-8")

        _secrets_cache[secret_name] = secret_value
        logger.info(f"Loaded secret '{secret_name}' from Secret Manager")
        return secret_value

    except Exception as e:
        logger.warning(f"Could not fetch secret '{secret_name}' from Secret Manager: {e}")
        return None


@dataclass
class OAuthConfig:
    """Google OAuth 2.0 web client configuration."""
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    redirect_uri: Optional[str] = None
    auth_uri: str = "https://accounts.google.com/o/oauth2/auth"
    token_uri: str = "https://oauth2.googleapis.com/token"
    scopes: List[str] = field(default_factory=lambda: list(GMAIL_SCOPES))

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret)


@dataclass
class GmailConfig:
    """Gmail watch and mutation settings."""
    watch_label_ids: List[str] = field(default_factory=lambda: ['INBOX'])
    mutation_label_ids: List[str] = field(default_factory=lambda: ['STARRED'])


@dataclass
class VisionConfig:
    """Cloud Vision label detection configuration."""
    max_concurrent_requests: int = 10


@dataclass
class AppConfig:
    """Main application configuration."""
    gcp_project_id: str
    gcf_region: str
    topic_id: str
    base_url_override: Optional[str] = None
    target_label: str = "bird"
    firestore_collection: str = "oauth2Token"
    refresh_margin_seconds: int = 60
    oauth: OAuthConfig = field(default_factory=OAuthConfig)
    gmail: GmailConfig = field(default_factory=GmailConfig)
    vision: VisionConfig = field(default_factory=VisionConfig)

    @property
    def base_url(self) -> str:
        if self.base_url_override:
            return self.base_url_override.rstrip('/')
        return f"https://{self.gcf_region}-{self.gcp_project_id}.cloudfunctions.net"

    @property
    def topic_name(self) -> str:
        return f"projects/{self.gcp_project_id}/topics/{self.topic_id}"

    @property
    def redirect_uri(self) -> str:
        return self.oauth.redirect_uri or f"{self.base_url}/oauth2callback"


def load_client_secret(path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load the OAuth client secret file downloaded from the Cloud Console.

    Args:
        path: Path to client_secret.json. If None, uses CLIENT_SECRET_PATH
              or ./client_secret.json.

    Returns:
        The "web" (or "installed") section, or an empty dict if the file is missing.
    """
    secret_path = Path(path or os.getenv('CLIENT_SECRET_PATH', 'client_secret.json'))

    if not secret_path.exists():
        logger.debug(f"Client secret file not found: {secret_path}")
        return {}

    with open(secret_path, 'r') as f:
        data = json.load(f)

    section = data.get('web') or data.get('installed') or {}
    logger.info(f"Loaded OAuth client from {secret_path}")
    return section


def load_config_file(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load YAML overrides for the application config.

    Args:
        config_path: Path to the YAML file. If None, uses BIRDWATCH_CONFIG_FILE.

    Returns:
        Mapping of overrides, empty if no file is configured.
    """
    config_path = config_path or os.getenv('BIRDWATCH_CONFIG_FILE')
    if not config_path:
        return {}

    path = Path(config_path)
    if not path.exists():
        logger.warning(f"Config file not found: {path}")
        return {}

    with open(path, 'r') as f:
        overrides = yaml.safe_load(f) or {}

    if not isinstance(overrides, dict):
        raise ValueError(f"Config file {path} must contain a mapping")

    logger.info(f"Loaded config overrides from {path}")
    return overrides


def get_app_config(config_path: Optional[str] = None) -> AppConfig:
    """
    Create application configuration from environment, YAML overrides and secrets.

    OAuth client credentials, first match wins:
        1. GOOGLE_OAUTH_CLIENT_ID / GOOGLE_OAUTH_CLIENT_SECRET
        2. client_secret.json (CLIENT_SECRET_PATH)
        3. Secret Manager (OAUTH_CLIENT_SECRET_NAME, default: birdwatch-oauth-client)

    Environment variables:
        GCP_PROJECT_ID: Google Cloud project ID
        GCF_REGION: Cloud Functions region
        PUBSUB_TOPIC_ID: Topic receiving Gmail push notifications
        BIRDWATCH_BASE_URL: Overrides the computed Cloud Functions base URL
        TARGET_LABEL: Vision label that triggers starring (default: bird)
        OAUTH_TOKEN_COLLECTION: Firestore collection for tokens (default: oauth2Token)
        TOKEN_REFRESH_MARGIN_SECONDS: Refresh window before expiry (default: 60)
        VISION_MAX_CONCURRENT: Concurrent label detection requests (default: 10)
    """
    overrides = load_config_file(config_path)

    def _value(key: str, env_name: str, default: Any) -> Any:
        if os.getenv(env_name) is not None:
            return os.getenv(env_name)
        return overrides.get(key, default)

    project_id = _value('gcp_project_id', 'GCP_PROJECT_ID', 'YOUR_GCLOUD_PROJECT_ID')

    client_id = os.getenv('GOOGLE_OAUTH_CLIENT_ID')
    client_secret = os.getenv('GOOGLE_OAUTH_CLIENT_SECRET')
    if not (client_id and client_secret):
        web_client = load_client_secret()
        client_id = client_id or web_client.get('client_id')
        client_secret = client_secret or web_client.get('client_secret')
    if not (client_id and client_secret):
        secret_name = os.getenv('OAUTH_CLIENT_SECRET_NAME', 'birdwatch-oauth-client')
        raw = get_secret(secret_name, project_id)
        if raw:
            web_client = json.loads(raw)
            web_client = web_client.get('web', web_client)
            client_id = client_id or web_client.get('client_id')
            client_secret = client_secret or web_client.get('client_secret')

    if not (client_id and client_secret):
        logger.warning("OAuth client credentials are not configured")

    oauth_config = OAuthConfig(
        client_id=client_id,
        client_secret=client_secret,
        redirect_uri=os.getenv('GOOGLE_OAUTH_REDIRECT_URI') or overrides.get('redirect_uri'),
    )

    gmail_overrides = overrides.get('gmail') or {}
    gmail_config = GmailConfig(
        watch_label_ids=gmail_overrides.get('watch_label_ids', ['INBOX']),
        mutation_label_ids=gmail_overrides.get('mutation_label_ids', ['STARRED'])
    )

    vision_config = VisionConfig(
        max_concurrent_requests=int(_value('vision_max_concurrent', 'VISION_MAX_CONCURRENT', 10))
    )

    return AppConfig(
        gcp_project_id=project_id,
        gcf_region=_value('gcf_region', 'GCF_REGION', 'YOUR_GCF_REGION'),
        topic_id=_value('topic_id', 'PUBSUB_TOPIC_ID', 'YOUR_PUBSUB_TOPIC'),
        base_url_override=_value('base_url', 'BIRDWATCH_BASE_URL', None),
        target_label=_value('target_label', 'TARGET_LABEL', 'bird'),
        firestore_collection=_value('firestore_collection', 'OAUTH_TOKEN_COLLECTION', 'oauth2Token'),
        refresh_margin_seconds=int(_value('refresh_margin_seconds', 'TOKEN_REFRESH_MARGIN_SECONDS', 60)),
        oauth=oauth_config,
        gmail=gmail_config,
        vision=vision_config
    )
