"""Shared fixtures.

Configuration directories are pointed at a scratch location before shipyard
is imported, so the module-level config never touches the real home dir.
"""
import os
import tempfile

_scratch = tempfile.mkdtemp(prefix='shipyard-tests-')
os.environ['XDG_CONFIG_HOME'] = os.path.join(_scratch, 'config')
os.environ['XDG_DATA_HOME'] = os.path.join(_scratch, 'data')
os.environ.pop('BUILD_NUMBER', None)

import asyncio
from dataclasses import dataclass
from datetime import date
from pathlib import Path

import pytest
import yaml

from shipyard.config import Config
from shipyard.credentials import SecretStore
from shipyard.downstream import DownstreamTrigger
from shipyard.invoker import ToolInvoker
from shipyard.runner import PipelineRunner
from shipyard.schemas import PipelineParameters

CREDENTIALS = {
    'dockerpwd': {'username': 'deployer', 'password': 'hunter2-registry'},
    'sonarpwd': {'secret': 'sonar-token-123'},
    'kubectlpwd': {'secret': 'kube-token-456'},
    'githubpwd': {'username': 'bot', 'password': 'gh-pass-789'},
}

DEPLOYMENT = '''apiVersion: apps/v1
kind: Deployment
metadata:
  name: orders
spec:
  template:
    spec:
      containers:
        - name: orders
          image: shipyard/orders:$IMAGE_TAG
'''


@dataclass
class Call:
    argv: list[str]
    env: dict[str, str]
    cwd: Path
    input: bytes | None


class FakeInvoker(ToolInvoker):
    """Records commands instead of starting processes.

    ``responses`` maps an argv prefix to ``(exit_code, output)`` or to a
    callable returning it.
    """

    def __init__(self):
        super().__init__()
        self.calls = []
        self.responses = {}

    async def _execute(self, argv, *, env, cwd, input, stdout_only):
        self.calls.append(Call(argv, env, Path(cwd), input))
        for prefix, response in self.responses.items():
            if tuple(argv[: len(prefix)]) == prefix:
                if callable(response):
                    response = response(argv, Path(cwd))
                exit_code, output = response
                return exit_code, output.encode()
        return 0, b''

    def commands(self) -> list[tuple[str, ...]]:
        return [tuple(x.argv) for x in self.calls]

    def ran(self, *prefix: str) -> bool:
        return any(x[: len(prefix)] == prefix for x in self.commands())


class FakeDownstream(DownstreamTrigger):
    def __init__(self):
        super().__init__('http://ci.invalid/pipelines/{name}/runs')
        self.triggered = []
        self.never = asyncio.Event()

    async def _send(self, name, parameters):
        self.triggered.append((name, parameters))
        # a downstream pipeline that never answers
        await self.never.wait()


def _checkout(argv, cwd: Path):
    (cwd / 'k8s').mkdir()
    (cwd / 'k8s' / 'deployment.yaml').write_text(DEPLOYMENT)
    (cwd / 'k8s' / 'service.yaml').write_text('kind: Service\n')
    (cwd / 'target').mkdir()
    (cwd / 'target' / 'orders.jar').write_bytes(b'jar')
    return 0, 'Cloning into .\n'


@pytest.fixture
def settings(tmp_path) -> Config:
    credentials_file = tmp_path / 'credentials.yml'
    credentials_file.write_text(yaml.safe_dump(CREDENTIALS))
    return Config(
        data_dir=tmp_path / 'data',
        credentials_file=credentials_file,
        mvn='mvn',
        git='git',
        docker='docker',
        kubectl='kubectl',
        sonar_scanner_home='/opt/sonar-scanner',
        registry_account='shipyard',
        image_name='orders',
    )


@pytest.fixture
def invoker() -> FakeInvoker:
    res = FakeInvoker()
    res.responses[('kubectl', 'config', 'view')] = (0, 'https://192.168.49.2:8443\n')
    res.responses[('git', 'clone')] = _checkout
    return res


@pytest.fixture
def downstream() -> FakeDownstream:
    return FakeDownstream()


@pytest.fixture
def make_runner(settings, invoker, downstream):
    def make(
        skip_tests: bool = True,
        run_number: int = 42,
        parameters: PipelineParameters | None = None,
        **kwargs,
    ):
        parameters = parameters or PipelineParameters(
            repository_url='https://github.com/example/orders.git',
            branch='main',
            scanner_project_key='orders',
            skip_tests=skip_tests,
        )
        kwargs.setdefault('invoker', invoker)
        kwargs.setdefault('downstream', downstream)
        kwargs.setdefault('secrets', SecretStore(settings.credentials_file))
        kwargs.setdefault('today', date(2024, 6, 1))
        return PipelineRunner(parameters, run_number, settings=settings, **kwargs)

    return make
