"""Unit tests for the HTTP and GraphQL clients."""

import json
import logging

import httpx
import pytest

from collateral_oracle.src.clients import (
    BaseClient,
    ClientConfigError,
    ClientError,
    ClientHTTPError,
    CoinGeckoClient,
    DetailClient,
    DiscoveryClient,
    DiscoveryError,
    GraphQLClient,
    GraphQLError,
)

URL = "https://api.example.test/graphql"


@pytest.fixture
def mock_http():
    """Install a MockTransport-backed shared client.

    Returns a function taking a request handler; every handled request is
    appended to the returned list.
    """
    requests: list[httpx.Request] = []

    def install(handler):
        def record(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return handler(request)

        BaseClient.set_shared_client(
            httpx.AsyncClient(transport=httpx.MockTransport(record))
        )
        return requests

    yield install
    BaseClient.set_shared_client(None)


def graphql_response(data=None, errors=None) -> httpx.Response:
    body = {}
    if data is not None:
        body["data"] = data
    if errors is not None:
        body["errors"] = errors
    return httpx.Response(200, json=body)


def token_item(**overrides) -> dict:
    item = {
        "id": "1",
        "name": "crypto.com",
        "address": "0xABCDEFabcdef0123456789012345678901234567",
        "fractionalizedAt": "2024-01-01T00:00:00Z",
        "boughtOutAt": None,
        "status": "ACTIVE",
        "poolAddress": "0x" + "11" * 20,
        "params": {
            "initialValuation": "1000000",
            "name": "crypto.com",
            "symbol": "CRYPTO",
            "decimals": 18,
            "totalSupply": "1000000",
        },
    }
    item.update(overrides)
    return item


class TestGraphQLClient:
    """Test the GraphQL transport."""

    def test_requires_url(self) -> None:
        """An empty endpoint is a configuration error."""
        with pytest.raises(ClientConfigError):
            GraphQLClient("")

    @pytest.mark.asyncio
    async def test_query_payload_and_headers(self, mock_http) -> None:
        """Queries are POSTed with variables and the API-KEY header."""
        requests = mock_http(lambda r: graphql_response({"ok": True}))
        client = GraphQLClient(URL, api_key="secret")

        data = await client.query("query { ok }", {"name": "a.com"})

        assert data == {"ok": True}
        assert requests[0].method == "POST"
        assert requests[0].headers["API-KEY"] == "secret"
        assert json.loads(requests[0].content) == {
            "query": "query { ok }",
            "variables": {"name": "a.com"},
        }

    @pytest.mark.asyncio
    async def test_no_api_key_header(self, mock_http) -> None:
        requests = mock_http(lambda r: graphql_response({"ok": True}))
        await GraphQLClient(URL).query("query { ok }")
        assert "API-KEY" not in requests[0].headers

    @pytest.mark.asyncio
    async def test_graphql_errors(self, mock_http) -> None:
        """An errors array raises GraphQLError."""
        mock_http(lambda r: graphql_response(errors=[{"message": "bad field"}]))
        with pytest.raises(GraphQLError, match="bad field") as exc_info:
            await GraphQLClient(URL).query("query { nope }")
        assert exc_info.value.errors == [{"message": "bad field"}]

    @pytest.mark.asyncio
    async def test_http_error(self, mock_http) -> None:
        """Non-2xx responses raise ClientHTTPError."""
        mock_http(lambda r: httpx.Response(503, text="unavailable"))
        with pytest.raises(ClientHTTPError) as exc_info:
            await GraphQLClient(URL).query("query { ok }")
        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_invalid_json(self, mock_http) -> None:
        mock_http(lambda r: httpx.Response(200, text="<html>"))
        with pytest.raises(ClientError, match="Invalid JSON"):
            await GraphQLClient(URL).query("query { ok }")

    @pytest.mark.asyncio
    async def test_missing_data(self, mock_http) -> None:
        mock_http(lambda r: httpx.Response(200, json={}))
        with pytest.raises(ClientError, match="no data"):
            await GraphQLClient(URL).query("query { ok }")

    @pytest.mark.asyncio
    async def test_body_not_an_object(self, mock_http) -> None:
        """A JSON array body is a ClientError, not an AttributeError."""
        mock_http(lambda r: httpx.Response(200, json=[{"data": {}}]))
        with pytest.raises(ClientError, match="Unexpected GraphQL response type: list"):
            await GraphQLClient(URL).query("query { ok }")

    @pytest.mark.asyncio
    async def test_data_not_an_object(self, mock_http) -> None:
        mock_http(lambda r: graphql_response(["a", "b"]))
        with pytest.raises(ClientError, match="Unexpected GraphQL data type: list"):
            await GraphQLClient(URL).query("query { ok }")

    @pytest.mark.asyncio
    async def test_network_error(self, mock_http) -> None:
        """Transport failures become ClientError."""

        def fail(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        mock_http(fail)
        with pytest.raises(ClientError, match="Request failed"):
            await GraphQLClient(URL).query("query { ok }")


class TestDiscoveryClient:
    """Test asset discovery."""

    @pytest.mark.asyncio
    async def test_discover(self, mock_http) -> None:
        """Items are parsed into DiscoveredAssets."""
        mock_http(
            lambda r: graphql_response(
                {"fractionalTokens": {"items": [token_item()], "totalCount": 1, "hasNextPage": False}}
            )
        )
        assets = await DiscoveryClient(URL).discover()

        assert len(assets) == 1
        asset = assets[0]
        assert asset.address == "0xabcdefabcdef0123456789012345678901234567"
        assert asset.name == "crypto.com"
        assert asset.initial_valuation == 1_000_000.0
        assert asset.total_supply == 1_000_000.0
        assert asset.decimals == 18
        assert asset.symbol == "CRYPTO"
        assert asset.bought_out_at is None

    @pytest.mark.asyncio
    async def test_name_falls_back_to_params(self, mock_http) -> None:
        item = token_item(name=None)
        item["params"]["decimals"] = None
        mock_http(lambda r: graphql_response({"fractionalTokens": {"items": [item]}}))

        assets = await DiscoveryClient(URL).discover()

        assert assets[0].name == "crypto.com"
        assert assets[0].decimals is None

    @pytest.mark.asyncio
    async def test_empty(self, mock_http) -> None:
        """No tokens gives an empty list."""
        mock_http(lambda r: graphql_response({"fractionalTokens": None}))
        assert await DiscoveryClient(URL).discover() == []

    @pytest.mark.asyncio
    async def test_partial_page_warns(self, mock_http, caplog) -> None:
        """A further page is reported but not fetched."""
        requests = mock_http(
            lambda r: graphql_response(
                {"fractionalTokens": {"items": [token_item()], "totalCount": 40, "hasNextPage": True}}
            )
        )
        with caplog.at_level(logging.WARNING):
            assets = await DiscoveryClient(URL).discover()

        assert len(assets) == 1
        assert len(requests) == 1
        assert "partial page" in caplog.text

    @pytest.mark.asyncio
    async def test_malformed_item_skipped(self, mock_http, caplog) -> None:
        """One unparseable item is skipped, the rest are kept."""
        bad = token_item(address="0x" + "22" * 20)
        bad["params"]["decimals"] = "6.0"
        items = [bad, None, token_item()]
        mock_http(lambda r: graphql_response({"fractionalTokens": {"items": items}}))

        with caplog.at_level(logging.WARNING):
            assets = await DiscoveryClient(URL).discover()

        assert [a.address for a in assets] == ["0xabcdefabcdef0123456789012345678901234567"]
        assert caplog.text.count("Skipping malformed discovery item") == 2

    @pytest.mark.asyncio
    async def test_all_items_malformed(self, mock_http) -> None:
        """A page with no parseable item is a discovery error."""
        item = token_item()
        del item["address"]
        mock_http(lambda r: graphql_response({"fractionalTokens": {"items": [item]}}))
        with pytest.raises(DiscoveryError, match="malformed"):
            await DiscoveryClient(URL).discover()

    @pytest.mark.asyncio
    async def test_items_not_a_list(self, mock_http) -> None:
        mock_http(lambda r: graphql_response({"fractionalTokens": {"items": "oops"}}))
        with pytest.raises(DiscoveryError, match="Malformed discovery items"):
            await DiscoveryClient(URL).discover()

    @pytest.mark.asyncio
    async def test_upstream_failure(self, mock_http) -> None:
        """Transport and GraphQL errors surface as DiscoveryError."""
        mock_http(lambda r: httpx.Response(500, text="boom"))
        with pytest.raises(DiscoveryError, match="HTTP 500"):
            await DiscoveryClient(URL).discover()


class TestDetailClient:
    """Test per-name details."""

    @pytest.mark.asyncio
    async def test_fetch_details(self, mock_http) -> None:
        requests = mock_http(
            lambda r: graphql_response(
                {
                    "names": {
                        "items": [
                            {
                                "name": "crypto.com",
                                "expiresAt": "2030-01-01T00:00:00Z",
                                "activeOffersCount": 3,
                            }
                        ]
                    }
                }
            )
        )
        details = await DetailClient(URL).fetch_details("crypto.com")

        assert details.expires_at == "2030-01-01T00:00:00Z"
        assert details.active_offers_count == 3
        assert json.loads(requests[0].content)["variables"] == {"name": "crypto.com"}

    @pytest.mark.asyncio
    async def test_unknown_name(self, mock_http) -> None:
        mock_http(lambda r: graphql_response({"names": {"items": []}}))
        assert await DetailClient(URL).fetch_details("nobody.com") is None

    @pytest.mark.asyncio
    async def test_null_offers(self, mock_http) -> None:
        mock_http(
            lambda r: graphql_response(
                {"names": {"items": [{"name": "a.com", "expiresAt": None, "activeOffersCount": None}]}}
            )
        )
        details = await DetailClient(URL).fetch_details("a.com")
        assert details.active_offers_count == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "names",
        [
            {"items": [None]},
            {"items": ["a.com"]},
            {"items": "a.com"},
            ["a.com"],
            "a.com",
            {"items": [{"name": "a.com", "activeOffersCount": "many"}]},
        ],
    )
    async def test_malformed_response(self, mock_http, names) -> None:
        """Unexpected shapes are reported as ClientError."""
        mock_http(lambda r: graphql_response({"names": names}))
        with pytest.raises(ClientError, match="Failed to parse details for a.com"):
            await DetailClient(URL).fetch_details("a.com")


class TestCoinGeckoClient:
    """Test CoinGecko key tiers and batched prices."""

    def test_free_tier(self) -> None:
        client = CoinGeckoClient()
        assert client.tier == "free"
        assert client.base_url == CoinGeckoClient.BASE_URL_FREE
        assert client.api_header is None

    def test_demo_prefix(self) -> None:
        """A demo: prefix is stripped and selects the demo header."""
        client = CoinGeckoClient(api_key="demo:abc")
        assert client.tier == "demo"
        assert client.base_url == CoinGeckoClient.BASE_URL_FREE
        assert client.api_header == ("x-cg-demo-api-key", "abc")

    def test_cg_key_is_demo(self) -> None:
        client = CoinGeckoClient(api_key="CG-xyz")
        assert client.tier == "demo"
        assert client.api_header == ("x-cg-demo-api-key", "CG-xyz")

    def test_pro_key(self) -> None:
        client = CoinGeckoClient(api_key="pro-key")
        assert client.tier == "pro"
        assert client.base_url == CoinGeckoClient.BASE_URL_PRO
        assert client.api_header == ("x-cg-pro-api-key", "pro-key")

    def test_base_url_override(self) -> None:
        client = CoinGeckoClient(api_key="pro-key", base_url="http://localhost:9999/api/")
        assert client.base_url == "http://localhost:9999/api"

    @pytest.mark.asyncio
    async def test_fetch_prices(self, mock_http) -> None:
        """One request serves every mapped symbol."""
        requests = mock_http(
            lambda r: httpx.Response(
                200, json={"bitcoin": {"usd": 65000.5}, "solana": {"usd": 150}}
            )
        )
        client = CoinGeckoClient(api_key="demo:abc")

        prices, errors = await client.fetch_prices(["MWBTC", "MSOL", "MARB", "NOPE"])

        assert prices == {"MWBTC": 65000.5, "MSOL": 150.0}
        assert set(errors) == {"MARB", "NOPE"}
        assert len(requests) == 1
        params = requests[0].url.params
        assert params["ids"] == "bitcoin,solana,arbitrum"
        assert params["vs_currencies"] == "usd"
        assert requests[0].headers["x-cg-demo-api-key"] == "abc"

    @pytest.mark.asyncio
    async def test_no_mappings(self, mock_http) -> None:
        requests = mock_http(lambda r: httpx.Response(200, json={}))
        with pytest.raises(ClientError, match="No valid token mappings"):
            await CoinGeckoClient().fetch_prices(["NOPE"])
        assert requests == []

    @pytest.mark.asyncio
    async def test_rate_limited(self, mock_http) -> None:
        mock_http(lambda r: httpx.Response(429, text="slow down"))
        with pytest.raises(ClientHTTPError) as exc_info:
            await CoinGeckoClient().fetch_prices(["MWBTC"])
        assert exc_info.value.status_code == 429

    @pytest.mark.asyncio
    async def test_add_token_mapping(self, mock_http) -> None:
        mock_http(lambda r: httpx.Response(200, json={"ethereum": {"usd": 3000}}))
        client = CoinGeckoClient(token_mapping={})
        client.add_token_mapping("METH", "ethereum")

        prices, errors = await client.fetch_prices(["METH"])
        assert prices == {"METH": 3000.0}
        assert errors == {}

    @pytest.mark.asyncio
    async def test_ping(self, mock_http) -> None:
        mock_http(lambda r: httpx.Response(200, json={"gecko_says": "(V3) To the Moon!"}))
        assert await CoinGeckoClient().ping()

    @pytest.mark.asyncio
    async def test_ping_failure(self, mock_http) -> None:
        mock_http(lambda r: httpx.Response(500))
        assert not await CoinGeckoClient().ping()
