import asyncio
import logging

import httpx

from shipyard.schemas import DownstreamParameters

logger = logging.getLogger(__name__)


class DownstreamTrigger:
    """Starts other pipelines without waiting for them.

    ``trigger`` only schedules the request; its result is logged and never
    reported back to the caller. ``drain`` lets a short-lived process give
    pending requests a chance to go out before it exits.
    """

    url_template: str | None
    _pending: set[asyncio.Task]

    def __init__(
        self,
        url_template: str | None,
        timeout: float = 30,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.url_template = url_template
        self.timeout = timeout
        self.transport = transport
        self._pending = set()

    def trigger(self, name: str, parameters: DownstreamParameters):
        if self.url_template is None:
            logger.warning(f'No downstream URL configured, not triggering {name}')
            return
        task = asyncio.create_task(self._send(name, parameters))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        logger.info(f'Triggered {name} with {parameters.image_reference}')

    async def _send(self, name: str, parameters: DownstreamParameters):
        try:
            url = self.url_template.format(name=name)
        except (KeyError, IndexError, ValueError) as e:
            logger.error(
                f'Bad downstream URL template {self.url_template!r}, '
                f'{name} was not triggered: {e!r}'
            )
            return
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self.transport
            ) as client:
                resp = await client.post(
                    url, json=parameters.model_dump(mode='json', by_alias=True)
                )
                resp.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f'Downstream pipeline {name} was not triggered: {e}')
        else:
            logger.info(f'Downstream pipeline {name} accepted ({resp.status_code})')

    async def drain(self, timeout: float | None = None):
        if not self._pending:
            return
        _, pending = await asyncio.wait(set(self._pending), timeout=timeout)
        for task in pending:
            task.cancel()


__all__ = ['DownstreamTrigger']
