import aiohttp.web
import pytest

from consul_operator._cogs.clients.api import get
from consul_operator._cogs.clients.errors import APIError, APINotFoundError, check_response


async def test_no_error_on_success(
        resp_mocker, aresponses, hostname, context):
    resp = aresponses.Response(status=200)
    aresponses.add(hostname, '/', 'get', resp_mocker(return_value=resp))

    async with context.session.get(f'https://{hostname}/') as response:
        await check_response(response)
    assert response.status == 200


async def test_status_payload_is_exposed(
        resp_mocker, aresponses, hostname, settings, context, logger):
    status = {
        'kind': 'Status',
        'code': 409,
        'message': 'already exists',
        'details': {'name': 'name1', 'kind': 'services'},
    }
    resp = aiohttp.web.json_response(status, status=409)
    aresponses.add(hostname, '/', 'get', resp_mocker(return_value=resp))

    with pytest.raises(APIError) as err:
        await get('/', settings=settings, context=context, logger=logger)
    assert err.value.status == 409
    assert err.value.code == 409
    assert err.value.message == 'already exists'
    assert err.value.details == {'name': 'name1', 'kind': 'services'}
    assert isinstance(err.value.__cause__, aiohttp.ClientResponseError)


async def test_non_status_payload_is_hidden(
        resp_mocker, aresponses, hostname, settings, context, logger):
    resp = aiohttp.web.json_response({'kind': 'Secret', 'data': 'sensitive'}, status=404)
    aresponses.add(hostname, '/', 'get', resp_mocker(return_value=resp))

    with pytest.raises(APINotFoundError) as err:
        await get('/', settings=settings, context=context, logger=logger)
    assert err.value.status == 404
    assert err.value.code is None
    assert err.value.message is None
    assert err.value.details is None
    assert 'sensitive' not in str(err.value)


async def test_non_json_payload_is_ignored(
        resp_mocker, aresponses, hostname, settings, context, logger):
    resp = aresponses.Response(status=404, text='not found')
    aresponses.add(hostname, '/', 'get', resp_mocker(return_value=resp))

    with pytest.raises(APINotFoundError) as err:
        await get('/', settings=settings, context=context, logger=logger)
    assert err.value.code is None
