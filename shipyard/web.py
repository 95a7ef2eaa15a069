import logging
from typing import Callable

from pydantic import ValidationError
from starlette.applications import Starlette
from starlette.background import BackgroundTask
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from shipyard.config import Config, config
from shipyard.runner import PipelineRunner
from shipyard.runner.utils import allocate_run_number
from shipyard.schemas import PipelineParameters, RunResult

logger = logging.getLogger(__name__)


def create_app(
    settings: Config = config,
    runner_factory: Callable[..., PipelineRunner] = PipelineRunner,
) -> Starlette:
    # finished runs keep only their result
    active: dict[int, PipelineRunner] = {}
    finished: dict[int, RunResult] = {}

    async def execute(run_number: int, runner: PipelineRunner):
        try:
            finished[run_number] = await runner.run()
        finally:
            active.pop(run_number, None)

    async def start_run(request: Request):
        try:
            parameters = PipelineParameters.model_validate(await request.json())
        except (ValueError, ValidationError) as e:
            return JSONResponse({'detail': str(e)}, 422)

        run_number = allocate_run_number(settings.data_dir)
        runner = runner_factory(parameters, run_number, settings=settings)
        active[run_number] = runner
        logger.info(f'Accepted run #{run_number} for {parameters.repository_url}')
        return JSONResponse(
            {
                'runNumber': run_number,
                'buildIdentifier': runner.pipeline_run.build_identifier,
            },
            202,
            background=BackgroundTask(execute, run_number, runner),
        )

    async def get_run(request: Request):
        run_number = request.path_params['run_number']
        if run_number in finished:
            result = finished[run_number]
        elif run_number in active:
            result = active[run_number].pipeline_run.result()
        else:
            return JSONResponse({'detail': 'Run not found'}, 404)
        return JSONResponse(result.model_dump(mode='json', by_alias=True))

    app = Starlette(
        debug=settings.debug,
        routes=[
            Route('/runs', start_run, methods=['POST']),
            Route('/runs/{run_number:int}', get_run, methods=['GET']),
        ],
    )
    app.state.active_runs = active
    app.state.finished_runs = finished
    return app


app = create_app()
