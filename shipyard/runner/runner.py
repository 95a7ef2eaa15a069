import logging
from datetime import date
from pathlib import Path
from typing import Sequence

from shipyard.config import Config, config
from shipyard.credentials import SecretStore
from shipyard.downstream import DownstreamTrigger
from shipyard.environment import EnvironmentContext, initialize
from shipyard.invoker import ToolInvoker
from shipyard.runner.hooks import run_hooks
from shipyard.runner.stage import Stage, StageRunner
from shipyard.runner.stages import STAGES
from shipyard.schemas import (
    PipelineParameters,
    RunResult,
    RunStatus,
    StageOutcome,
    StageState,
)

logger = logging.getLogger(__name__)


class PipelineRun:
    parameters: PipelineParameters
    run_number: int
    env: EnvironmentContext
    workspace: Path
    status: RunStatus
    stages: list[StageOutcome]
    label: str | None

    def __init__(
        self,
        parameters: PipelineParameters,
        run_number: int,
        env: EnvironmentContext,
        workspace: Path,
    ):
        self.parameters = parameters
        self.run_number = run_number
        self.env = env
        self.workspace = workspace
        self.status = RunStatus.pending
        self.stages = []
        self.label = None

    @property
    def build_identifier(self) -> str:
        return self.env.get('IMAGE_TAG')

    def result(self) -> RunResult:
        return RunResult(
            run_number=self.run_number,
            build_identifier=self.build_identifier,
            status=self.status,
            label=self.label,
            stages=self.stages,
        )


class PipelineRunner:
    """Runs the stages of one pipeline run in order.

    The first failed stage stops the run. Post-execution hooks run once
    afterwards whatever happened.
    """

    settings: Config
    stages: Sequence[Stage]
    invoker: ToolInvoker
    secrets: SecretStore
    downstream: DownstreamTrigger
    pipeline_run: PipelineRun

    def __init__(
        self,
        parameters: PipelineParameters,
        run_number: int,
        *,
        settings: Config = config,
        stages: Sequence[Stage] = STAGES,
        invoker: ToolInvoker | None = None,
        secrets: SecretStore | None = None,
        downstream: DownstreamTrigger | None = None,
        today: date | None = None,
    ):
        self.settings = settings
        self.stages = stages
        self.invoker = invoker or ToolInvoker(settings.output_limit)
        self.secrets = secrets or SecretStore(settings.credentials_file)
        self.downstream = downstream or DownstreamTrigger(settings.downstream_url)

        workspace = settings.workspaces_dir / str(run_number)
        env = initialize(parameters, run_number, settings, workspace, today)
        self.pipeline_run = PipelineRun(parameters, run_number, env, workspace)

    async def run(self) -> RunResult:
        run = self.pipeline_run
        if run.status != RunStatus.pending:
            raise ValueError(f'Run #{run.run_number} has already been started')
        logger.info(f'Starting run #{run.run_number} ({run.build_identifier})')

        run.status = RunStatus.running
        try:
            for stage in self.stages:
                outcome = await StageRunner(self, stage).run()
                run.stages.append(outcome)
                if outcome.state == StageState.failed:
                    run.status = RunStatus.failed
                    break
            else:
                run.status = RunStatus.succeeded
        finally:
            if run.status == RunStatus.running:
                run.status = RunStatus.failed
            await run_hooks(run, self.settings)

        logger.info(f'Run #{run.run_number} {run.status.value}')
        return run.result()


__all__ = ['PipelineRun', 'PipelineRunner']
