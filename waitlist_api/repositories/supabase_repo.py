import hashlib
import logging
from functools import lru_cache
from typing import Any

from postgrest.exceptions import APIError
from supabase import create_client

from waitlist_api.core.config import Settings, get_settings


logger = logging.getLogger("waitlist_api")

NOT_NULL_VIOLATION = "23502"
IP_HASH_COLUMN = "ip_hash"


class StoreNotConfiguredError(RuntimeError):
    pass


def hash_ip_address(ip_address: str) -> str:
    return hashlib.sha256(ip_address.encode("utf-8")).hexdigest()


def is_missing_ip_hash_error(exc: BaseException) -> bool:
    if not isinstance(exc, APIError):
        return False
    if str(exc.code or "") != NOT_NULL_VIOLATION:
        return False
    return f'"{IP_HASH_COLUMN}"' in str(exc.message or "")


class WaitlistRepository:
    def __init__(self, settings: Settings):
        self.settings = settings
        self._client: Any | None = None
        self._ip_hash_required = settings.ip_hash_mode == "always"
        self._init_client()

    def _init_client(self) -> None:
        if self.settings.supabase_url and self.settings.supabase_service_role_key:
            self._client = create_client(self.settings.supabase_url, self.settings.supabase_service_role_key)

    @property
    def enabled(self) -> bool:
        return self._client is not None

    @property
    def ip_hash_required(self) -> bool:
        return self._ip_hash_required

    def _table(self) -> Any:
        if not self._client:
            raise StoreNotConfiguredError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY are required.")
        return self._client.table(self.settings.waitlist_table)

    def ping(self) -> None:
        self._table().select("id").limit(1).execute()

    def count_submissions(self, *, ip_address: str, window_start: str, window_end: str) -> int:
        response = (
            self._table()
            .select("id", count="exact", head=True)
            .eq("ip_address", ip_address)
            .gte("created_at", window_start)
            .lte("created_at", window_end)
            .execute()
        )
        return int(response.count or 0)

    def _upsert(self, row: dict[str, Any]) -> None:
        self._table().upsert(row, on_conflict="email").execute()

    def upsert_entry(self, row: dict[str, Any], *, ip_address: str) -> None:
        """Insert or fully overwrite the row for ``row["email"]``.

        The ``ip_hash`` column only exists once its migration has run. Until it
        is known to be required the row is written without it; a not-null
        violation on that column switches this repository to the hashed
        variant and the same upsert is retried once.
        """
        if self._ip_hash_required:
            self._upsert({**row, IP_HASH_COLUMN: hash_ip_address(ip_address)})
            return

        try:
            self._upsert(row)
        except APIError as exc:
            if self.settings.ip_hash_mode == "never" or not is_missing_ip_hash_error(exc):
                raise
            logger.warning(
                "Table %s requires %s; retrying upsert with hashed IP.",
                self.settings.waitlist_table,
                IP_HASH_COLUMN,
            )
            self._ip_hash_required = True
            self._upsert({**row, IP_HASH_COLUMN: hash_ip_address(ip_address)})


@lru_cache(maxsize=1)
def get_waitlist_repo() -> WaitlistRepository:
    return WaitlistRepository(get_settings())
