"""
scholarpay/db/supabase.py
Supabase client configuration and read helpers
"""
from supabase import create_client, Client
from scholarpay.core.config import settings
from functools import lru_cache
from typing import Optional, Dict, List, Any, Awaitable, Callable
import asyncio
import logging

logger = logging.getLogger(__name__)

# ============================================
# CLIENT FACTORY FUNCTIONS
# ============================================

@lru_cache()
def get_supabase_admin_client() -> Client:
    """
    Get Supabase admin client with service role key
    Payment tables sit behind Row Level Security, so the loaders use this one

    Returns:
        Client: Supabase admin client instance

    Raises:
        Exception: If admin client creation fails
    """
    try:
        supabase: Client = create_client(
            supabase_url=settings.SUPABASE_URL,
            supabase_key=settings.SUPABASE_SERVICE_KEY
        )
        logger.info("Supabase admin client created successfully")
        return supabase
    except Exception as e:
        logger.error(f"Failed to create Supabase admin client: {e}")
        raise Exception(f"Supabase admin connection failed: {str(e)}")


# ============================================
# CONCURRENCY HELPERS
# ============================================

async def gather_loads(*loads: Awaitable[Any]) -> List[Any]:
    """
    Run loads concurrently; the first failure cancels the rest

    Every sibling is awaited before the error propagates, so no task is left
    running or holding an unretrieved exception.
    """
    tasks = [asyncio.ensure_future(load) for load in loads]
    try:
        return await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


# ============================================
# HELPER CLASS FOR READ QUERIES
# ============================================

class SupabaseQueries:
    """
    Helper class for the read-only queries the payment loaders need

    Queries run in a worker thread so an awaiting caller can be cancelled
    while a request is in flight.
    """

    def __init__(self, client: Client = None):
        """
        Initialize SupabaseQueries

        Args:
            client: Optional Supabase client. If not provided, uses the admin client.
        """
        self.client = client or get_supabase_admin_client()

    async def _execute(self, query) -> List[Dict[str, Any]]:
        response = await asyncio.to_thread(query.execute)
        return response.data or []

    async def select_all(
        self,
        table: str,
        columns: str = "*",
        filters: Optional[Dict[str, Any]] = None,
        build: Optional[Callable[[Any], Any]] = None,
    ) -> List[Dict[str, Any]]:
        """
        Select all records from a table with optional equality filters

        Args:
            table: Table name
            columns: PostgREST select string, embedded relations allowed
            filters: Dictionary of column:value pairs to filter by
            build: Optional callback applying extra query modifiers (or_, order, ...)

        Returns:
            list: List of records matching the criteria

        Example:
            >>> approved = await db.select_all(
            ...     "zelle_payments",
            ...     filters={"status": "approved"}
            ... )
        """
        try:
            query = self.client.table(table).select(columns)

            if filters:
                for key, value in filters.items():
                    query = query.eq(key, value)

            if build:
                query = build(query)

            data = await self._execute(query)
            logger.info(f"Selected {len(data)} records from {table}")
            return data

        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Error selecting from {table}: {e}")
            raise Exception(f"Failed to select from {table}: {str(e)}")

    async def select_in(
        self,
        table: str,
        column: str,
        values: List[Any],
        columns: str = "*",
        batch_size: int = 50,
    ) -> List[Dict[str, Any]]:
        """
        Select records whose column is in a list of values, in batches

        Args:
            table: Table name
            column: Column compared against values
            values: Values to match; duplicates are ignored
            columns: PostgREST select string
            batch_size: Maximum values per request (keeps URLs short)

        Returns:
            list: All matching records across batches

        Example:
            >>> overrides = await db.select_in(
            ...     "user_fee_overrides", "user_id", user_ids
            ... )
        """
        unique = list(dict.fromkeys(v for v in values if v))
        if not unique:
            return []

        try:
            batches = [unique[i:i + batch_size] for i in range(0, len(unique), batch_size)]
            results = await gather_loads(*[
                self._execute(self.client.table(table).select(columns).in_(column, batch))
                for batch in batches
            ])
            data = [row for batch in results for row in batch]
            logger.info(f"Selected {len(data)} records from {table} in {len(batches)} batch(es)")
            return data

        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Error selecting from {table} by {column}: {e}")
            raise Exception(f"Failed to select from {table}: {str(e)}")


# ============================================
# CONVENIENCE FUNCTIONS
# ============================================

async def test_connection() -> bool:
    """
    Test Supabase connection

    Returns:
        bool: True if connection successful, False otherwise
    """
    try:
        client = get_supabase_admin_client()
        await asyncio.to_thread(client.table("user_profiles").select("user_id").limit(1).execute)
        logger.info("✓ Supabase connection test successful")
        return True
    except Exception as e:
        logger.error(f"✗ Supabase connection test failed: {e}")
        return False


# ============================================
# EXPORT
# ============================================

__all__ = [
    'get_supabase_admin_client',
    'SupabaseQueries',
    'gather_loads',
    'test_connection',
]
