# src/feeds/mcsr.py
"""MCSR Ranked match history client.

Fetches a player's recent matches from the MCSR Ranked REST API and maps
the loosely-typed payloads onto canonical RawMatchRecord objects, so the
prediction engine never sees raw API fields.

Endpoint: GET {base}/users/{player}/matches?limit=..&offset=..[&type=2]
"""

from __future__ import annotations

from typing import Any, Optional, Protocol
from urllib.parse import quote

import httpx
import structlog

from src.exceptions import FeedError, PlayerNotFoundError, RateLimitError
from src.ml.records import Participant, RawMatchRecord
from src.utils.parsing import normalize_timestamp_ms, pick_number, pick_text

logger = structlog.get_logger()

RANKED_MATCH_TYPE = 2


class MatchHistoryProvider(Protocol):
    """Anything that can hand the engine a player's recent matches."""

    async def fetch_matches(
        self,
        player: str,
        limit: int,
        *,
        ranked_only: bool = True,
        page_size: Optional[int] = None,
    ) -> list[RawMatchRecord]:
        ...


def _parse_retry_after(value: Optional[str]) -> Optional[int]:
    seconds = pick_number(value)
    if seconds is None or seconds < 0:
        return None
    return int(seconds * 1000)


def _first_present(raw: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if raw.get(key) is not None:
            return raw[key]
    return None


def _find_change(changes: Any, uuid: Optional[str]) -> dict[str, Any]:
    if not uuid or not isinstance(changes, list):
        return {}
    for entry in changes:
        if isinstance(entry, dict) and str(entry.get("uuid", "")) == uuid:
            return entry
    return {}


def parse_match(raw: Any) -> Optional[RawMatchRecord]:
    """Map one API match payload to a RawMatchRecord.

    Returns ``None`` for payloads without a usable timestamp.
    """
    if not isinstance(raw, dict):
        return None
    played_at = normalize_timestamp_ms(_first_present(raw, "date", "timestamp", "played_at"))
    if played_at is None:
        return None

    result = raw.get("result") if isinstance(raw.get("result"), dict) else {}
    changes = raw.get("changes")

    participants: list[Participant] = []
    for player in raw.get("players") or []:
        if not isinstance(player, dict):
            continue
        uuid = pick_text(player.get("uuid"))
        name = pick_text(
            player.get("nickname"), player.get("name"), player.get("username"),
            player.get("id"), uuid,
        )
        if not name:
            continue
        change = _find_change(changes, uuid)
        participants.append(
            Participant(
                name=name,
                uuid=uuid,
                elo_after=pick_number(
                    player.get("eloRate"), player.get("elo_rate"), player.get("elo"),
                    player.get("rating"), change.get("eloRate"),
                ),
                elo_delta=pick_number(change.get("change"), change.get("delta")),
            )
        )

    return RawMatchRecord(
        played_at_ms=played_at,
        participants=tuple(participants),
        match_id=pick_text(raw.get("id"), raw.get("match_id"), raw.get("matchId")),
        winner_uuid=pick_text(result.get("uuid")),
        duration_ms=pick_number(result.get("time"), raw.get("duration"), raw.get("time")),
    )


class McsrApiClient:
    """Async client for the MCSR Ranked match history endpoint."""

    def __init__(
        self,
        base_url: str = "https://mcsrranked.com/api",
        timeout: float = 8.0,
        page_size: int = 20,
    ):
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._page_size = max(1, page_size)
        self._client: Optional[httpx.AsyncClient] = None

    @classmethod
    def from_settings(cls) -> "McsrApiClient":
        from config.settings import settings
        return cls(
            base_url=settings.MCSR_API_BASE_URL,
            timeout=settings.MCSR_API_TIMEOUT_SECONDS,
            page_size=settings.MCSR_API_PAGE_SIZE,
        )

    async def connect(self) -> None:
        """Create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                headers={"Accept": "application/json"},
                timeout=self._timeout,
            )
            logger.info("connected_to_mcsr", base_url=self._base_url)

    async def disconnect(self) -> None:
        """Close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.info("disconnected_from_mcsr")

    async def __aenter__(self) -> "McsrApiClient":
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.disconnect()

    async def _get_page(self, player: str, params: dict[str, Any]) -> list[Any]:
        if not self._client:
            raise RuntimeError("Not connected. Call connect() first.")
        try:
            response = await self._client.get(f"/users/{quote(player, safe='')}/matches", params=params)
        except httpx.RequestError as exc:
            raise FeedError(f"MCSR request failed for {player}: {exc}") from exc

        if response.status_code == 429:
            retry_after_ms = _parse_retry_after(response.headers.get("Retry-After"))
            logger.warning("mcsr_rate_limited", player=player, retry_after_ms=retry_after_ms)
            raise RateLimitError(f"MCSR API rate limited fetching {player}", retry_after_ms)
        if response.status_code == 404:
            raise PlayerNotFoundError(f"Unknown MCSR player: {player}")
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise FeedError(f"MCSR API error {response.status_code} for {player}") from exc

        body = response.json()
        payload = body.get("data", body) if isinstance(body, dict) else body
        return payload if isinstance(payload, list) else []

    async def fetch_matches(
        self,
        player: str,
        limit: int,
        *,
        ranked_only: bool = True,
        page_size: Optional[int] = None,
    ) -> list[RawMatchRecord]:
        """Fetch up to ``limit`` most recent matches for ``player``."""
        slug = player.strip()
        if not slug or limit <= 0:
            return []
        size = max(1, page_size or self._page_size)

        records: list[RawMatchRecord] = []
        offset = 0
        while len(records) < limit:
            params: dict[str, Any] = {"limit": size, "offset": offset}
            if ranked_only:
                params["type"] = RANKED_MATCH_TYPE
            page = await self._get_page(slug, params)
            if not page:
                break
            for raw in page:
                if ranked_only and isinstance(raw, dict) and raw.get("type") not in (None, RANKED_MATCH_TYPE):
                    continue
                record = parse_match(raw)
                if record is not None:
                    records.append(record)
            if len(page) < size:
                break
            offset += size

        logger.debug("fetched_mcsr_matches", player=slug, count=min(len(records), limit))
        return records[:limit]
