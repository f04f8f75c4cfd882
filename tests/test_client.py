import httpx
import pytest

from atlas_mcp.config import ConfigurationError, Settings, load_settings
from atlas_mcp.tools import client as client_module
from atlas_mcp.tools.client import AtlasClient, get_client, set_client
from atlas_mcp.tools.shared import ProviderError, TransportError
from atlas_mcp.tools.validation import Coordinate


@pytest.mark.asyncio
async def test_request_carries_key_and_api_version(atlas):
    atlas.add("/geocode", httpx.Response(200, json={"features": []}))

    await get_client().geocode("Seattle", 3)

    request = atlas.calls("/geocode")[0]
    assert request.url.host == "atlas.microsoft.com"
    assert request.url.params["subscription-key"] == "test-key"
    assert request.url.params["api-version"] == "2025-01-01"
    assert request.url.params["query"] == "Seattle"
    assert request.url.params["top"] == "3"


@pytest.mark.asyncio
async def test_reverse_geocode_sends_lon_lat(atlas):
    atlas.add("/reverseGeocode", httpx.Response(200, json={"features": []}))

    await get_client().reverse_geocode(Coordinate(47.6, -122.3))

    assert atlas.calls("/reverseGeocode")[0].url.params["coordinates"] == "-122.3,47.6"


@pytest.mark.asyncio
async def test_retries_transient_status_then_succeeds(atlas):
    atlas.add(
        "/geocode",
        httpx.Response(503, text="busy"),
        httpx.Response(429, text="slow down"),
        httpx.Response(200, json={"features": []}),
    )

    data = await get_client().geocode("Seattle", 1)

    assert data == {"features": []}
    assert len(atlas.calls("/geocode")) == 3


@pytest.mark.asyncio
async def test_transient_status_exhausts_retries(atlas):
    atlas.add("/geocode", httpx.Response(500, json={"error": {"message": "internal"}}))

    with pytest.raises(ProviderError) as excinfo:
        await get_client().geocode("Seattle", 1)

    assert excinfo.value.status_code == 500
    assert "internal" in excinfo.value.message
    assert excinfo.value.details["error_type"] == "upstream_error"
    assert len(atlas.calls("/geocode")) == 3


@pytest.mark.asyncio
async def test_client_errors_are_not_retried(atlas):
    atlas.add("/geocode", httpx.Response(401, json={"error": {"message": "bad key"}}))

    with pytest.raises(ProviderError) as excinfo:
        await get_client().geocode("Seattle", 1)

    assert excinfo.value.status_code == 401
    assert excinfo.value.details["error_type"] == "auth_error"
    assert len(atlas.calls("/geocode")) == 1


@pytest.mark.asyncio
async def test_transport_failure_retried_then_raised(atlas):
    atlas.add("/geocode", httpx.ConnectError("connection reset"))

    with pytest.raises(TransportError) as excinfo:
        await get_client().geocode("Seattle", 1)

    assert isinstance(excinfo.value, ProviderError)
    assert "ConnectError" in excinfo.value.message
    assert len(atlas.calls("/geocode")) == 3


@pytest.mark.asyncio
async def test_transport_failure_recovers(atlas):
    atlas.add(
        "/geocode",
        httpx.ReadTimeout("timed out"),
        httpx.Response(200, json={"features": []}),
    )

    assert await get_client().geocode("Seattle", 1) == {"features": []}


@pytest.mark.asyncio
async def test_malformed_json_is_provider_error(atlas):
    atlas.add("/geocode", httpx.Response(200, text="<html>oops</html>"))

    with pytest.raises(ProviderError) as excinfo:
        await get_client().geocode("Seattle", 1)

    assert "malformed" in excinfo.value.message


@pytest.mark.asyncio
async def test_image_endpoint_rejects_non_image(atlas):
    atlas.add("/map/static", httpx.Response(200, json={"not": "an image"}))

    with pytest.raises(ProviderError):
        await get_client().static_map_image("road", 10, 256, 256, center=Coordinate(0, 0))


@pytest.mark.asyncio
async def test_route_directions_repeats_avoid(atlas):
    atlas.add("/route/directions/json", httpx.Response(200, json={"routes": []}))

    await get_client().route_directions(
        [Coordinate(47.6, -122.3), Coordinate(45.5, -122.7)],
        "car",
        "fastest",
        ["tollRoads", "motorways"],
    )

    params = atlas.calls("/route/directions/json")[0].url.params
    assert params["query"] == "47.6,-122.3:45.5,-122.7"
    assert params.get_list("avoid") == ["tollRoads", "motorways"]
    assert params["api-version"] == "1.0"


@pytest.mark.asyncio
async def test_ip_country_code_reads_iso_code(atlas):
    atlas.add(
        "/geolocation/ip/json",
        httpx.Response(200, json={"countryRegion": {"isoCode": "US"}, "ipAddress": "8.8.8.8"}),
    )

    assert await get_client().ip_country_code("8.8.8.8") == "US"


@pytest.mark.asyncio
async def test_ip_country_code_rejects_non_string_code(atlas):
    atlas.add("/geolocation/ip/json", httpx.Response(200, json={"countryRegion": {"isoCode": 36}}))

    with pytest.raises(ProviderError, match="malformed payload"):
        await get_client().ip_country_code("1.1.1.1")


def test_get_client_is_lazy_singleton(monkeypatch):
    monkeypatch.setenv("AZURE_MAPS_SUBSCRIPTION_KEY", "env-key")
    set_client(None)
    try:
        first = get_client()
        assert first is get_client()
        assert first.settings.subscription_key == "env-key"
    finally:
        set_client(None)
    assert client_module._CLIENT is None


def test_load_settings_requires_key(monkeypatch):
    monkeypatch.delenv("AZURE_MAPS_SUBSCRIPTION_KEY", raising=False)

    with pytest.raises(ConfigurationError):
        load_settings()


def test_load_settings_reads_overrides(monkeypatch):
    monkeypatch.setenv("AZURE_MAPS_SUBSCRIPTION_KEY", " key ")
    monkeypatch.setenv("AZURE_MAPS_BASE_URL", "https://example.test/")
    monkeypatch.setenv("ATLAS_MCP_MAX_RETRIES", "0")
    monkeypatch.setenv("ATLAS_MCP_TIMEOUT", "3.5")

    settings = load_settings()

    assert settings == Settings(
        subscription_key="key",
        base_url="https://example.test",
        timeout=3.5,
        max_retries=0,
        backoff_seconds=settings.backoff_seconds,
        batch_concurrency=settings.batch_concurrency,
    )


def test_load_settings_rejects_bad_numbers(monkeypatch):
    monkeypatch.setenv("AZURE_MAPS_SUBSCRIPTION_KEY", "key")
    monkeypatch.setenv("ATLAS_MCP_MAX_RETRIES", "many")

    with pytest.raises(ConfigurationError):
        load_settings()


@pytest.mark.asyncio
async def test_client_without_retries_makes_single_attempt():
    attempts = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(request)
        return httpx.Response(502)

    client = AtlasClient(
        Settings(subscription_key="k", max_retries=0, backoff_seconds=0.0),
        transport=httpx.MockTransport(handler),
    )

    with pytest.raises(ProviderError):
        await client.get_json("/geocode", "2025-01-01")
    assert len(attempts) == 1
