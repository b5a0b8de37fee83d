"""
Unit Tests for the Redirect Walker
==================================

Test Coverage:
--------------
1. Second occurrence of the target cookie is returned immediately
2. Chain ending after a single occurrence returns that value
3. Target never seen => SessionNotObtained
4. max_hops=0 => SessionNotObtained without any request
5. Relative Location headers resolve against the current URL
6. Cookies set along the way are sent on later hops
"""

from unittest.mock import AsyncMock

import httpx
import pytest

from tyust_gateway.portal.errors import SessionNotObtained
from tyust_gateway.portal.redirects import walk_for_session_id

START = "https://sso.example/login?service=https%3A%2F%2Fjw.example%2Fentry"


def redirect(location, *cookies):
    headers = [("Location", location)] + [("Set-Cookie", c) for c in cookies]
    return httpx.Response(302, headers=headers)


def final(*cookies):
    return httpx.Response(200, headers=[("Set-Cookie", c) for c in cookies])


@pytest.fixture
def client():
    return AsyncMock()


@pytest.mark.asyncio
async def test_returns_second_occurrence(client):
    client.get.side_effect = [
        redirect("https://jw.example/entry?ticket=ST-1"),
        redirect("https://jw.example/home", "JSESSIONID=first; Path=/"),
        final("JSESSIONID=second; Path=/"),
        final("JSESSIONID=third; Path=/"),
    ]

    result = await walk_for_session_id(client, START, {"SESSION": "s"}, max_hops=10)

    assert result == "second"
    assert client.get.call_count == 3


@pytest.mark.asyncio
async def test_single_occurrence_returned_when_chain_ends(client):
    client.get.side_effect = [
        redirect("https://jw.example/entry", "JSESSIONID=only; Path=/"),
        final(),
    ]

    result = await walk_for_session_id(client, START, {}, max_hops=10)

    assert result == "only"


@pytest.mark.asyncio
async def test_single_occurrence_returned_when_hops_run_out(client):
    client.get.side_effect = [
        redirect("https://jw.example/a", "JSESSIONID=early; Path=/"),
        redirect("https://jw.example/b"),
    ]

    result = await walk_for_session_id(client, START, {}, max_hops=2)

    assert result == "early"


@pytest.mark.asyncio
async def test_target_never_seen_raises(client):
    client.get.side_effect = [
        redirect("https://jw.example/a", "route=r1; Path=/"),
        final(),
    ]

    with pytest.raises(SessionNotObtained):
        await walk_for_session_id(client, START, {}, max_hops=10)


@pytest.mark.asyncio
async def test_initial_jar_value_does_not_count(client):
    client.get.side_effect = [final()]

    with pytest.raises(SessionNotObtained):
        await walk_for_session_id(client, START, {"JSESSIONID": "stale"}, max_hops=10)


@pytest.mark.asyncio
async def test_zero_hops_fails_immediately(client):
    with pytest.raises(SessionNotObtained):
        await walk_for_session_id(client, START, {"SESSION": "s"}, max_hops=0)

    client.get.assert_not_called()


@pytest.mark.asyncio
async def test_relative_location_and_cookie_accumulation(client):
    client.get.side_effect = [
        redirect("/jwglxt/entry?ticket=ST-9", "route=r1; Path=/"),
        redirect("index.html", "JSESSIONID=first; Path=/"),
        final("JSESSIONID=second; Path=/"),
    ]

    await walk_for_session_id(client, "https://jw.example/sso/start", {"SESSION": "s"}, max_hops=10)

    urls = [call.args[0] for call in client.get.call_args_list]
    assert urls == [
        "https://jw.example/sso/start",
        "https://jw.example/jwglxt/entry?ticket=ST-9",
        "https://jw.example/jwglxt/index.html",
    ]

    second_hop = client.get.call_args_list[1]
    assert second_hop.kwargs["headers"]["Cookie"] == "SESSION=s; route=r1"
    assert second_hop.kwargs["follow_redirects"] is False

    third_hop = client.get.call_args_list[2]
    assert third_hop.kwargs["headers"]["Cookie"] == "SESSION=s; route=r1; JSESSIONID=first"


@pytest.mark.asyncio
async def test_custom_target_cookie(client):
    client.get.side_effect = [
        redirect("https://jw.example/a", "SID=one; Path=/"),
        final("SID=two; Path=/"),
    ]

    result = await walk_for_session_id(client, START, {}, max_hops=5, target="SID")

    assert result == "two"
