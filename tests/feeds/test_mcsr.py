# tests/feeds/test_mcsr.py
import pytest
import respx
from httpx import Response

from src.exceptions import FeedError, PlayerNotFoundError, RateLimitError
from src.feeds.mcsr import McsrApiClient, parse_match

BASE = "https://mcsrranked.com/api"
MATCHES_URL = f"{BASE}/users/Feinberg/matches"


@pytest.fixture
def mock_api():
    with respx.mock:
        yield respx


def raw_match(match_id, date_seconds, winner="u-fein", match_type=2):
    return {
        "id": match_id,
        "type": match_type,
        "date": date_seconds,
        "forfeited": False,
        "players": [
            {"uuid": "u-fein", "nickname": "Feinberg", "eloRate": 2010},
            {"uuid": "u-doog", "nickname": "doogile", "eloRate": 1890},
        ],
        "result": {"uuid": winner, "time": 512_345},
        "changes": [
            {"uuid": "u-fein", "change": 9, "eloRate": 2001},
            {"uuid": "u-doog", "change": -9, "eloRate": 1899},
        ],
    }


class TestParseMatch:
    def test_maps_payload_to_record(self):
        record = parse_match(raw_match(101, 1_700_000_000))

        assert record.played_at_ms == 1_700_000_000_000
        assert record.match_id == "101"
        assert record.winner_uuid == "u-fein"
        assert record.duration_ms == 512_345
        fein, doog = record.participants
        assert fein.name == "Feinberg"
        assert fein.elo_after == 2010
        assert fein.elo_delta == 9
        assert doog.elo_delta == -9

    def test_falls_back_to_alternate_fields(self):
        record = parse_match({
            "timestamp": 1_700_000_000_000,
            "players": [{"name": "solo", "uuid": "u1", "elo": "1500"}],
        })

        assert record.played_at_ms == 1_700_000_000_000
        assert record.participants[0].name == "solo"
        assert record.participants[0].elo_after == 1500
        assert record.winner_uuid is None

    def test_missing_timestamp_is_dropped(self):
        assert parse_match({"players": []}) is None
        assert parse_match("not a match") is None


class TestMcsrApiClient:
    @pytest.mark.asyncio
    async def test_fetch_matches(self, mock_api):
        route = mock_api.get(MATCHES_URL).mock(
            return_value=Response(200, json={"status": "success", "data": [raw_match(1, 1_700_000_000)]})
        )

        async with McsrApiClient(base_url=BASE) as client:
            records = await client.fetch_matches("Feinberg", 5)

        assert len(records) == 1
        assert records[0].participants[0].name == "Feinberg"
        params = route.calls.last.request.url.params
        assert params["type"] == "2"
        assert params["limit"] == "20"
        assert params["offset"] == "0"

    @pytest.mark.asyncio
    async def test_paginates_until_limit(self, mock_api):
        def page(request):
            offset = int(request.url.params["offset"])
            size = int(request.url.params["limit"])
            data = [raw_match(offset + i, 1_700_000_000 - offset - i) for i in range(size)]
            return Response(200, json={"data": data})

        route = mock_api.get(MATCHES_URL).mock(side_effect=page)

        async with McsrApiClient(base_url=BASE, page_size=3) as client:
            records = await client.fetch_matches("Feinberg", 7)

        assert len(records) == 7
        assert route.call_count == 3
        assert [r.match_id for r in records] == [str(i) for i in range(7)]

    @pytest.mark.asyncio
    async def test_stops_on_short_page(self, mock_api):
        route = mock_api.get(MATCHES_URL).mock(
            return_value=Response(200, json={"data": [raw_match(1, 1_700_000_000)]})
        )

        async with McsrApiClient(base_url=BASE, page_size=3) as client:
            records = await client.fetch_matches("Feinberg", 10)

        assert len(records) == 1
        assert route.call_count == 1

    @pytest.mark.asyncio
    async def test_filters_unranked_entries(self, mock_api):
        mock_api.get(MATCHES_URL).mock(
            return_value=Response(200, json={"data": [raw_match(1, 1_700_000_000, match_type=3), raw_match(2, 1_700_000_100)]})
        )

        async with McsrApiClient(base_url=BASE) as client:
            records = await client.fetch_matches("Feinberg", 5)

        assert [r.match_id for r in records] == ["2"]

    @pytest.mark.asyncio
    async def test_rate_limit_carries_retry_after(self, mock_api):
        mock_api.get(MATCHES_URL).mock(return_value=Response(429, headers={"Retry-After": "30"}))

        async with McsrApiClient(base_url=BASE) as client:
            with pytest.raises(RateLimitError) as exc_info:
                await client.fetch_matches("Feinberg", 5)

        assert exc_info.value.retry_after_ms == 30_000

    @pytest.mark.asyncio
    async def test_unknown_player(self, mock_api):
        mock_api.get(f"{BASE}/users/nobody/matches").mock(return_value=Response(404, json={"status": "error"}))

        async with McsrApiClient(base_url=BASE) as client:
            with pytest.raises(PlayerNotFoundError):
                await client.fetch_matches("nobody", 5)

    @pytest.mark.asyncio
    async def test_server_error(self, mock_api):
        mock_api.get(MATCHES_URL).mock(return_value=Response(500))

        async with McsrApiClient(base_url=BASE) as client:
            with pytest.raises(FeedError):
                await client.fetch_matches("Feinberg", 5)

    @pytest.mark.asyncio
    async def test_requires_connect(self):
        client = McsrApiClient(base_url=BASE)

        with pytest.raises(RuntimeError):
            await client.fetch_matches("Feinberg", 5)

    @pytest.mark.asyncio
    async def test_blank_player_makes_no_request(self):
        client = McsrApiClient(base_url=BASE)

        assert await client.fetch_matches("  ", 5) == []
