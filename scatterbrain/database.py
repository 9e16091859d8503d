import logging
from typing import Optional

from supabase import Client, create_client

from scatterbrain.config import Settings, get_settings

logger = logging.getLogger(__name__)

def create_supabase_client(settings: Optional[Settings] = None, service_role: bool = False) -> Client:
    """Create a Supabase client; the service role key bypasses row level security."""
    settings = settings or get_settings()
    key = settings.service_key if service_role else settings.supabase_key

    try:
        client = create_client(settings.supabase_url, key)
        logger.info(f"Supabase client initialized (service_role={service_role})")
        return client
    except Exception as e:
        logger.error(f"Error initializing Supabase client: {str(e)}")
        raise
