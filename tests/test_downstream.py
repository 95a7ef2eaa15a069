import asyncio
import json

import httpx

from shipyard.downstream import DownstreamTrigger
from shipyard.schemas import DownstreamParameters

PARAMETERS = DownstreamParameters(
    repository_url='https://github.com/example/orders.git',
    branch='main',
    scanner_project_key='orders',
    image_reference='shipyard/orders:2024-06-01-42',
)


def test_posts_parameters_in_camel_case():
    requests = []

    def handler(request: httpx.Request):
        requests.append(request)
        return httpx.Response(201)

    trigger = DownstreamTrigger(
        'http://ci.local/pipelines/{name}/runs',
        transport=httpx.MockTransport(handler),
    )

    async def main():
        trigger.trigger('DevSecOps-Pipeline', PARAMETERS)
        await trigger.drain()

    asyncio.run(main())

    assert len(requests) == 1
    assert str(requests[0].url) == 'http://ci.local/pipelines/DevSecOps-Pipeline/runs'
    assert json.loads(requests[0].content) == {
        'repositoryUrl': 'https://github.com/example/orders.git',
        'branch': 'main',
        'scannerProjectKey': 'orders',
        'imageReference': 'shipyard/orders:2024-06-01-42',
    }


def test_downstream_errors_are_only_logged(caplog):
    trigger = DownstreamTrigger(
        'http://ci.local/{name}',
        transport=httpx.MockTransport(lambda request: httpx.Response(500)),
    )

    async def main():
        trigger.trigger('DevSecOps-Pipeline', PARAMETERS)
        await trigger.drain()

    asyncio.run(main())
    assert 'was not triggered' in caplog.text


def test_not_configured(caplog):
    trigger = DownstreamTrigger(None)

    async def main():
        trigger.trigger('DevSecOps-Pipeline', PARAMETERS)
        return len(trigger._pending)

    assert asyncio.run(main()) == 0
    assert 'No downstream URL configured' in caplog.text


def test_bad_url_template_is_logged(caplog):
    requests = []
    trigger = DownstreamTrigger(
        'http://ci.local/{pipeline}',
        transport=httpx.MockTransport(lambda request: requests.append(request)),
    )

    async def main():
        trigger.trigger('DevSecOps-Pipeline', PARAMETERS)
        tasks = list(trigger._pending)
        await trigger.drain()
        return tasks

    tasks = asyncio.run(main())
    assert requests == []
    assert all(x.exception() is None for x in tasks)
    assert 'Bad downstream URL template' in caplog.text
