import logging
from typing import TYPE_CHECKING

import httpx

from shipyard.config import Config
from shipyard.const import VERSION_ARTIFACT
from shipyard.schemas import RunStatus, StageState

if TYPE_CHECKING:
    from shipyard.runner.runner import PipelineRun

logger = logging.getLogger(__name__)


def archive_build_identifier(run: 'PipelineRun', settings: Config):
    artifact_dir = settings.artifacts_dir / str(run.run_number)
    artifact_dir.mkdir(parents=True, exist_ok=True)
    (artifact_dir / VERSION_ARTIFACT).write_text(run.build_identifier)
    logger.info(f'Archived {VERSION_ARTIFACT} for run #{run.run_number}')


def label_run(run: 'PipelineRun'):
    run.label = f'Build #{run.run_number} - Version {run.build_identifier}'


async def notify_failure(run: 'PipelineRun', settings: Config):
    failed = [x for x in run.stages if x.state == StageState.failed]
    if failed:
        logger.error(
            f'Build failed at stage {failed[-1].name}. '
            'Please check the logs for details.'
        )
        if failed[-1].diagnostic:
            logger.error(failed[-1].diagnostic)
    else:
        logger.error('Build failed. Please check the logs for details.')

    if settings.notify_url:
        async with httpx.AsyncClient() as client:
            resp = await client.post(
                settings.notify_url,
                json=run.result().model_dump(mode='json', by_alias=True),
            )
            resp.raise_for_status()


async def run_hooks(run: 'PipelineRun', settings: Config):
    """Post-execution bookkeeping. Never raises."""
    try:
        archive_build_identifier(run, settings)
    except Exception:
        logger.exception('Failed to archive build identifier')
    try:
        label_run(run)
    except Exception:
        logger.exception('Failed to label run')
    if run.status == RunStatus.failed:
        try:
            await notify_failure(run, settings)
        except Exception:
            logger.exception('Failed to send failure notification')
