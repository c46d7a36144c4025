"""Unit tests for CirclesRpcClient."""
import asyncio

import aiohttp
import pytest
from unittest.mock import AsyncMock, MagicMock

from raila_circles.data_collector.circles_client import (
    CirclesRpcClient,
    CirclesRpcError,
    TrustRelationType,
)
from raila_circles.exceptions import EnrichmentError, UpstreamUnavailableError

from conftest import addr

RPC_URL = "https://rpc.example.org/"
ME = addr(0xA1)


def mock_session(payload=None, status=200, error=None):
    """aiohttp session stand-in returning `payload` for every POST."""
    response = MagicMock()
    response.status = status
    response.json = AsyncMock(return_value=payload)
    response.text = AsyncMock(return_value="upstream error")

    context = MagicMock()
    if error is not None:
        context.__aenter__ = AsyncMock(side_effect=error)
    else:
        context.__aenter__ = AsyncMock(return_value=response)
    context.__aexit__ = AsyncMock(return_value=False)

    session = MagicMock()
    session.post = MagicMock(return_value=context)
    return session


def relation(subject, obj, kind):
    return {"subjectAvatar": subject.to_checksum(), "objectAvatar": obj.to_checksum(), "relation": kind}


class TestTrustRelations:
    """Test trust relation queries."""

    @pytest.mark.asyncio
    async def test_trusters_include_direct_and_mutual(self):
        session = mock_session({"jsonrpc": "2.0", "id": 1, "result": [
            relation(ME, addr(1), "trustedBy"),
            relation(ME, addr(2), "mutuallyTrusts"),
            relation(ME, addr(3), "trusts"),
        ]})
        client = CirclesRpcClient(RPC_URL, session=session)

        trusters = await client.get_trusters_of(ME)

        assert trusters == {addr(1), addr(2)}
        payload = session.post.call_args.kwargs["json"]
        assert payload["method"] == "circles_getAggregatedTrustRelations"
        assert payload["params"] == [ME.to_checksum()]

    @pytest.mark.asyncio
    async def test_mutual_trusts(self):
        session = mock_session({"result": [
            relation(ME, addr(1), "trustedBy"),
            relation(ME, addr(2), "mutuallyTrusts"),
        ]})
        client = CirclesRpcClient(RPC_URL, session=session)

        assert await client.get_mutual_trusts(ME) == {addr(2)}

    @pytest.mark.asyncio
    async def test_malformed_relations_skipped(self):
        session = mock_session({"result": [
            {"subjectAvatar": "garbage", "objectAvatar": addr(1), "relation": "trustedBy"},
            relation(ME, addr(2), "unknownRelation"),
            relation(ME, addr(3), "trustedBy"),
        ]})
        client = CirclesRpcClient(RPC_URL, session=session)

        relations = await client.get_trust_relations(ME)

        assert [(r.object, r.relation) for r in relations] == [(addr(3), TrustRelationType.TRUSTED_BY)]

    @pytest.mark.asyncio
    async def test_empty_result(self):
        client = CirclesRpcClient(RPC_URL, session=mock_session({"result": None}))
        assert await client.get_trusters_of(ME) == set()


class TestErrors:
    """Test error mapping."""

    @pytest.mark.asyncio
    async def test_http_error(self):
        client = CirclesRpcClient(RPC_URL, session=mock_session(status=503))

        with pytest.raises(UpstreamUnavailableError) as exc_info:
            await client.get_trusters_of(ME)
        assert exc_info.value.source == "trust_graph"
        assert client.get_stats()["network_errors"] == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [aiohttp.ClientConnectionError("refused"), asyncio.TimeoutError()])
    async def test_network_error(self, error):
        client = CirclesRpcClient(RPC_URL, session=mock_session(error=error))

        with pytest.raises(UpstreamUnavailableError):
            await client.get_trusters_of(ME)

    @pytest.mark.asyncio
    async def test_rpc_error(self):
        client = CirclesRpcClient(RPC_URL, session=mock_session({"error": {"code": -32000, "message": "boom"}}))

        with pytest.raises(CirclesRpcError, match="boom"):
            await client.get_trusters_of(ME)
        assert client.get_stats()["rpc_errors"] == 1


class TestProfiles:
    """Test profile lookups."""

    @pytest.mark.asyncio
    async def test_profile(self):
        session = mock_session({"result": {"name": "Alice", "previewImageUrl": "alice.png"}})
        client = CirclesRpcClient(RPC_URL, session=session)

        profile = await client.get_profile(ME)

        assert profile.name == "Alice"
        assert profile.image_url == "alice.png"
        assert session.post.call_args.kwargs["json"]["method"] == "circles_getProfileByAddress"

    @pytest.mark.asyncio
    async def test_missing_profile(self):
        client = CirclesRpcClient(RPC_URL, session=mock_session({"result": None}))
        assert await client.get_profile(ME) is None

    @pytest.mark.asyncio
    async def test_profile_failure_is_enrichment_error(self):
        client = CirclesRpcClient(RPC_URL, session=mock_session(status=500))

        with pytest.raises(EnrichmentError):
            await client.get_profile(ME)

    @pytest.mark.asyncio
    async def test_close_keeps_external_session(self):
        session = mock_session({"result": None})
        session.close = AsyncMock()
        client = CirclesRpcClient(RPC_URL, session=session)

        await client.close()

        session.close.assert_not_called()
        assert client.session is None
