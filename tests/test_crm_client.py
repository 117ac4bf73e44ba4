"""
Tests for the CRM API client.

Uses httpx.MockTransport; backoff waits are disabled so retried calls run
immediately.
"""

import json
from unittest.mock import patch

import httpx
import pytest
from tenacity import wait_none

from candidate_sync.clients.crm_client import CRMClient
from candidate_sync.errors import CRMError


def _client(handler) -> CRMClient:
    return CRMClient(
        base_url='https://crm.example.com/',
        api_key='test-key',
        transport=httpx.MockTransport(handler),
    )


@pytest.fixture(autouse=True)
def no_backoff():
    with patch.object(CRMClient._request.retry, 'wait', wait_none()):
        yield


class TestConstruction:
    def test_requires_base_url(self):
        with patch('candidate_sync.clients.crm_client.config') as mock_config:
            mock_config.CRM_API_BASE_URL = ''
            with pytest.raises(ValueError, match='CRM_API_BASE_URL'):
                CRMClient(api_key='k')

    def test_requires_api_key(self):
        with patch('candidate_sync.clients.crm_client.config') as mock_config:
            mock_config.CRM_API_KEY = ''
            with pytest.raises(ValueError, match='CRM_API_KEY'):
                CRMClient(base_url='https://crm.example.com')


class TestClearOpportunityAssignee:
    @pytest.mark.asyncio
    async def test_success(self):
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={'ok': True})

        client = _client(handler)
        try:
            await client.clear_opportunity_assignee('OPP-1')
        finally:
            await client.close()

        assert len(requests) == 1
        request = requests[0]
        assert request.method == 'PUT'
        assert request.url == 'https://crm.example.com/opportunities/OPP-1'
        assert request.headers['Authorization'] == 'Bearer test-key'
        assert request.headers['Version'] == '2021-07-28'
        assert json.loads(request.content) == {'assignedTo': None}

    @pytest.mark.asyncio
    async def test_4xx_no_retry(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(404, json={'message': 'not found'})

        client = _client(handler)
        try:
            with pytest.raises(CRMError) as exc_info:
                await client.clear_opportunity_assignee('OPP-404')
        finally:
            await client.close()

        assert len(calls) == 1
        assert exc_info.value.context['status_code'] == 404

    @pytest.mark.asyncio
    async def test_5xx_retried_then_succeeds(self):
        statuses = iter([503, 502, 200])

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(next(statuses))

        client = _client(handler)
        try:
            await client.clear_opportunity_assignee('OPP-1')
        finally:
            await client.close()

        assert next(statuses, None) is None

    @pytest.mark.asyncio
    async def test_429_exhausts_retries(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(429)

        client = _client(handler)
        try:
            with pytest.raises(CRMError, match='HTTP 429'):
                await client.clear_opportunity_assignee('OPP-1')
        finally:
            await client.close()

        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_network_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError('connection refused', request=request)

        client = _client(handler)
        try:
            with pytest.raises(CRMError, match='CRM unreachable'):
                await client.clear_opportunity_assignee('OPP-1')
        finally:
            await client.close()
