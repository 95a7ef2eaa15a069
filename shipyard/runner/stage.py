import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Awaitable, Callable

from shipyard.config import Config
from shipyard.credentials import Binding, with_credentials
from shipyard.environment import EnvironmentContext
from shipyard.exceptions import PipelineError, ToolExecutionError
from shipyard.schemas import PipelineParameters, StageOutcome, StageState

if TYPE_CHECKING:
    from shipyard.runner.runner import PipelineRunner

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Stage:
    name: str
    body: Callable[['StageRunner'], Awaitable[None]]
    when: Callable[[PipelineParameters], bool] | None

    def __init__(
        self,
        name: str,
        body: Callable[['StageRunner'], Awaitable[None]],
        when: Callable[[PipelineParameters], bool] | None = None,
    ):
        self.name = name
        self.body = body
        self.when = when

    def __repr__(self):
        return f'Stage({self.name!r})'


class StageRunner:
    runner: 'PipelineRunner'
    stage: Stage

    def __init__(self, runner: 'PipelineRunner', stage: Stage):
        self.runner = runner
        self.stage = stage

    @property
    def env(self) -> EnvironmentContext:
        return self.runner.pipeline_run.env

    @property
    def parameters(self) -> PipelineParameters:
        return self.runner.pipeline_run.parameters

    @property
    def settings(self) -> Config:
        return self.runner.settings

    @property
    def workspace(self) -> Path:
        return self.runner.pipeline_run.workspace

    async def sh(
        self,
        command: str,
        *args: str | Path,
        env: EnvironmentContext | None = None,
        input: str | None = None,
        stdout_only: bool = False,
    ) -> str:
        result = await self.runner.invoker.run(
            command,
            *args,
            env=env or self.env,
            cwd=self.workspace,
            input=input,
            stdout_only=stdout_only,
        )
        return result.output

    def with_credentials(self, *bindings: Binding):
        return with_credentials(self.env, bindings, self.runner.secrets)

    def should_run(self) -> bool:
        return self.stage.when is None or self.stage.when(self.parameters)

    async def run(self) -> StageOutcome:
        name = self.stage.name
        started_at = _now()
        if not self.should_run():
            logger.info(f'Stage {name} skipped')
            return StageOutcome(
                name=name,
                state=StageState.skipped,
                started_at=started_at,
                finished_at=started_at,
            )

        logger.info(f'Stage {name} started')
        try:
            await self.stage.body(self)
        except ToolExecutionError as e:
            diagnostic = f'{e}\n{e.output}'.strip()
        except PipelineError as e:
            diagnostic = f'{type(e).__name__}: {e}'
        except Exception as e:
            logger.exception(f'Unexpected error in stage {name}')
            diagnostic = f'{type(e).__name__}: {e}'
        else:
            logger.info(f'Stage {name} succeeded')
            return StageOutcome(
                name=name,
                state=StageState.succeeded,
                started_at=started_at,
                finished_at=_now(),
            )

        logger.error(f'Stage {name} failed: {diagnostic.splitlines()[0]}')
        return StageOutcome(
            name=name,
            state=StageState.failed,
            started_at=started_at,
            finished_at=_now(),
            diagnostic=diagnostic,
        )


__all__ = ['Stage', 'StageRunner']
