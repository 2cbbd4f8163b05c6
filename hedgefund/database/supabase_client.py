import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from loguru import logger
from supabase import Client, create_client

from hedgefund.core.errors import PersistenceFailure
from hedgefund.core.ports import PersistencePort

TRADES_TABLE = "trades"
PERFORMANCE_TABLE = "strategy_performance"
ACTIVITY_TABLE = "bot_activity_logs"


class SupabaseClient(PersistencePort):
    """Supabase store for trades, strategy performance and the activity log"""

    def __init__(self, supabase_url: str, supabase_key: str, enabled: bool = True, user_id: Optional[str] = None):
        self.enabled = enabled
        self.user_id = user_id
        self.client: Optional[Client] = None

        if enabled and supabase_url and supabase_key:
            try:
                self.client = create_client(supabase_url, supabase_key)
                logger.info("Supabase client initialized")
            except Exception as e:
                logger.error(f"Failed to initialize Supabase client: {e}")
                self.enabled = False
        else:
            self.enabled = False

    def _stamp(self, record: Dict[str, Any]) -> Dict[str, Any]:
        data = dict(record)
        if self.user_id and "user_id" not in data:
            data["user_id"] = self.user_id
        return data

    async def save_trade(self, record: Dict[str, Any]) -> None:
        """Save trade execution to database"""
        if not self.enabled or not self.client:
            return

        data = self._stamp(record)
        try:
            await asyncio.to_thread(
                lambda: self.client.table(TRADES_TABLE).insert(data).execute()
            )
            logger.debug(f"Trade {data.get('order_id')} saved to Supabase")
        except Exception as e:
            logger.error(f"Failed to save trade to Supabase: {e}")
            raise PersistenceFailure(f"save_trade failed: {e}") from e

    async def save_strategy_performance(self, record: Dict[str, Any]) -> None:
        if not self.enabled or not self.client:
            return

        data = self._stamp(record)
        data["updated_at"] = datetime.now(timezone.utc).isoformat()
        conflict = "user_id,strategy_id" if "user_id" in data else "strategy_id"
        try:
            await asyncio.to_thread(
                lambda: self.client.table(PERFORMANCE_TABLE).upsert(data, on_conflict=conflict).execute()
            )
        except Exception as e:
            logger.error(f"Failed to save performance for {record.get('strategy_id')}: {e}")
            raise PersistenceFailure(f"save_strategy_performance failed: {e}") from e

    async def load_strategy_performance(self, strategy_id: str) -> Optional[Dict[str, Any]]:
        if not self.enabled or not self.client:
            return None

        def _query():
            query = self.client.table(PERFORMANCE_TABLE).select("*").eq("strategy_id", strategy_id)
            if self.user_id:
                query = query.eq("user_id", self.user_id)
            return query.limit(1).execute()

        try:
            response = await asyncio.to_thread(_query)
        except Exception as e:
            logger.error(f"Failed to load performance for {strategy_id}: {e}")
            raise PersistenceFailure(f"load_strategy_performance failed: {e}") from e

        if response.data:
            return response.data[0]
        return None

    async def log_activity(self, event: Dict[str, Any]) -> None:
        if not self.enabled or not self.client:
            return

        data = self._stamp(event)
        data.setdefault("timestamp", datetime.now(timezone.utc).isoformat())
        try:
            await asyncio.to_thread(
                lambda: self.client.table(ACTIVITY_TABLE).insert(data).execute()
            )
        except Exception as e:
            logger.error(f"Failed to log activity to Supabase: {e}")
            raise PersistenceFailure(f"log_activity failed: {e}") from e

    async def get_recent_trades(self, limit: int = 50) -> List[Dict[str, Any]]:
        """Most recent trade records, newest first"""
        if not self.enabled or not self.client:
            return []

        def _query():
            query = self.client.table(TRADES_TABLE).select("*")
            if self.user_id:
                query = query.eq("user_id", self.user_id)
            return query.order("timestamp", desc=True).limit(limit).execute()

        try:
            response = await asyncio.to_thread(_query)
            return response.data or []
        except Exception as e:
            logger.error(f"Failed to get recent trades: {e}")
            raise PersistenceFailure(f"get_recent_trades failed: {e}") from e

    async def health_check(self) -> bool:
        if not self.enabled or not self.client:
            return False
        try:
            await asyncio.to_thread(
                lambda: self.client.table(PERFORMANCE_TABLE).select("strategy_id").limit(1).execute()
            )
            return True
        except Exception as e:
            logger.warning(f"Supabase health check failed: {e}")
            return False
