from datetime import datetime
from enum import Enum
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PipelineParameters(_CamelModel):
    repository_url: str
    branch: str
    scanner_project_key: str
    skip_tests: bool


class DownstreamParameters(_CamelModel):
    repository_url: str
    branch: str
    scanner_project_key: str
    image_reference: str


class RunStatus(str, Enum):
    pending = 'pending'
    running = 'running'
    succeeded = 'succeeded'
    failed = 'failed'


class StageState(str, Enum):
    skipped = 'skipped'
    succeeded = 'succeeded'
    failed = 'failed'


class StageOutcome(_CamelModel):
    model_config = ConfigDict(frozen=True)

    name: str
    state: StageState
    started_at: datetime
    finished_at: datetime
    diagnostic: str | None = None


class RunResult(_CamelModel):
    run_number: int
    build_identifier: str
    status: RunStatus
    label: str | None = None
    stages: list[StageOutcome]


__all__ = [
    'DownstreamParameters',
    'PipelineParameters',
    'RunResult',
    'RunStatus',
    'StageOutcome',
    'StageState',
]
