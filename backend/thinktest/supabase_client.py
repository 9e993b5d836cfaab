"""
Supabase client configuration.

Clients are created per request with the caller's JWT so that row level
security applies to every query.
"""

from supabase import Client, create_client

from thinktest.core.config import get_settings


def get_supabase_client(access_token: str | None = None) -> Client:
    """
    Get a Supabase client.

    Args:
        access_token: the user's JWT; when given, PostgREST queries run as that user
    """
    settings = get_settings()
    client = create_client(settings.supabase_url, settings.supabase_anon_key)
    if access_token:
        client.postgrest.auth(access_token)
    return client
