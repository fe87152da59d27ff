"""Service-role Supabase client used by the job store.

One client is kept per project URL. Credentials are checked by
``Settings`` when ``JOB_STORE=supabase``, so this module only connects.
"""

import logging

from supabase import create_client, Client

from mediagen.config import Settings

logger = logging.getLogger(__name__)

_clients: dict[str, Client] = {}


def get_supabase(settings: Settings) -> Client:
    """Return the cached client for ``settings.supabase_url``, creating it on first use."""
    client = _clients.get(settings.supabase_url)
    if client is None:
        logger.info("Connecting job store to Supabase at %s", settings.supabase_url)
        client = create_client(settings.supabase_url, settings.supabase_service_role_key)
        _clients[settings.supabase_url] = client
    return client


def reset_supabase() -> None:
    """Forget cached clients so the next call reconnects."""
    _clients.clear()
