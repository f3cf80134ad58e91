"""Runtime configuration read from environment variables."""
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from errors import ConfigurationError


@dataclass
class Settings:
    """Settings shared by every handler."""
    airtable_api_key: str
    airtable_base_id: str
    events_table: str = 'Events'
    staging_table: str = 'Staging'
    playlists_table: str = 'Playlists'
    ticketmaster_api_key: Optional[str] = None
    skiddle_api_key: Optional[str] = None
    eventbrite_token: Optional[str] = None
    log_level: str = 'INFO'
    timeout_seconds: int = 30
    max_workers: int = 4

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'Settings':
        """
        Build settings from the process environment.

        Args:
            environ: Mapping to read from (default: os.environ)

        Returns:
            Settings instance

        Raises:
            ConfigurationError: If a required variable is missing or malformed
        """
        env = os.environ if environ is None else environ

        missing = [
            name for name in ('AIRTABLE_API_KEY', 'AIRTABLE_BASE_ID')
            if not env.get(name)
        ]
        if missing:
            raise ConfigurationError(
                f"Missing required environment variables: {', '.join(missing)}"
            )

        try:
            timeout_seconds = int(env.get('TIMEOUT_SECONDS', '30'))
            max_workers = int(env.get('MAX_WORKERS', '4'))
        except ValueError as e:
            raise ConfigurationError(f"Invalid numeric setting: {e}") from e

        return cls(
            airtable_api_key=env['AIRTABLE_API_KEY'],
            airtable_base_id=env['AIRTABLE_BASE_ID'],
            events_table=env.get('EVENTS_TABLE', 'Events'),
            staging_table=env.get('STAGING_TABLE', 'Staging'),
            playlists_table=env.get('PLAYLISTS_TABLE', 'Playlists'),
            ticketmaster_api_key=env.get('TICKETMASTER_API_KEY') or None,
            skiddle_api_key=env.get('SKIDDLE_API_KEY') or None,
            eventbrite_token=env.get('EVENTBRITE_TOKEN') or None,
            log_level=env.get('LOG_LEVEL', 'INFO'),
            timeout_seconds=timeout_seconds,
            max_workers=max_workers
        )

    def require(self, attribute: str, env_name: str) -> str:
        """
        Return an optional setting, failing if it is unset.

        Raises:
            ConfigurationError: If the setting is empty
        """
        value = getattr(self, attribute)
        if not value:
            raise ConfigurationError(f"No API key configured (set {env_name})")
        return value
