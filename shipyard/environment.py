import logging
import re
from datetime import date
from pathlib import Path
from typing import Iterable, Iterator

from shipyard.config import Config
from shipyard.const import BUILD_DATE_FORMAT, MASK
from shipyard.exceptions import ConfigurationConflict, UndefinedVariable
from shipyard.schemas import PipelineParameters

logger = logging.getLogger(__name__)

VARIABLE_RE = re.compile(r'\$\{([A-Za-z_][A-Za-z0-9_]*)}')


def build_identifier(build_date: date, run_number: int) -> str:
    return f'{build_date.strftime(BUILD_DATE_FORMAT)}-{run_number}'


class EnvironmentContext:
    """Variables visible to stages and the processes they start.

    Keys are write-once. A child context (see ``child``) layers extra values
    over its parent without touching it. Values under ``secret_keys`` are
    masked in anything passed through ``mask``; ``revoke`` drops the layer's
    values for good.
    """

    _values: dict[str, str]
    _parent: 'EnvironmentContext | None'
    _secret_keys: frozenset[str]

    def __init__(
        self,
        values: dict[str, str] | None = None,
        *,
        parent: 'EnvironmentContext | None' = None,
        secret_keys: Iterable[str] = (),
    ):
        self._values = {}
        self._parent = parent
        self._secret_keys = frozenset(secret_keys)
        for key, value in (values or {}).items():
            self.set(key, value)

    def __contains__(self, key: str) -> bool:
        if key in self._values:
            return True
        return self._parent is not None and key in self._parent

    def get(self, key: str) -> str:
        if key in self._values:
            return self._values[key]
        if self._parent is not None:
            return self._parent.get(key)
        raise UndefinedVariable(key)

    def set(self, key: str, value: str):
        if key in self:
            raise ConfigurationConflict(key)
        self._values[key] = str(value)

    def child(
        self, values: dict[str, str], *, secret_keys: Iterable[str] = ()
    ) -> 'EnvironmentContext':
        return EnvironmentContext(values, parent=self, secret_keys=secret_keys)

    def revoke(self):
        self._values.clear()

    def as_env(self) -> dict[str, str]:
        res = self._parent.as_env() if self._parent is not None else {}
        res |= self._values
        return res

    def secrets(self) -> Iterator[str]:
        for key in self._secret_keys:
            if key in self._values:
                yield self._values[key]
        if self._parent is not None:
            yield from self._parent.secrets()

    def substitute(self, text: str) -> str:
        return VARIABLE_RE.sub(lambda m: self.get(m.group(1)), text)

    def mask(self, text: str) -> str:
        # longest first, so a secret containing another one is hidden entirely
        for secret in sorted(set(self.secrets()), key=len, reverse=True):
            if secret:
                text = text.replace(secret, MASK)
        return text


def initialize(
    parameters: PipelineParameters,
    run_number: int,
    settings: Config,
    workspace: Path,
    today: date | None = None,
) -> EnvironmentContext:
    today = today or date.today()
    tag = build_identifier(today, run_number)
    env = EnvironmentContext(
        {
            'MVN': settings.mvn,
            'GIT': settings.git,
            'DOCKER_HOME': settings.docker,
            'KUBECTL_HOME': settings.kubectl,
            'SONAR_SCANNER_HOME': str(settings.sonar_scanner_home),
            'DOCKER_CLIENT_TIMEOUT': str(settings.docker_client_timeout),
            'COMPOSE_HTTP_TIMEOUT': str(settings.compose_http_timeout),
            'IMAGE_NAME': settings.image_name,
            'DOCKER_USERNAME': settings.registry_account,
            'K8S_NAMESPACE': settings.k8s_namespace,
            'BASE_IMAGE': settings.base_image,
            'SONAR_JAVA_BINARIES': settings.sonar_java_binaries,
            'GIT_URL': parameters.repository_url,
            'GIT_BRANCH': parameters.branch,
            'SONAR_PROJECT_KEY': parameters.scanner_project_key,
            'SKIP_TESTS': 'true' if parameters.skip_tests else 'false',
            'BUILD_NUMBER': str(run_number),
            'WORKSPACE': str(workspace),
            'BUILD_DATE': today.strftime(BUILD_DATE_FORMAT),
            'IMAGE_TAG': tag,
        }
    )
    env.set(
        'DOCKER_IMAGE',
        f'{settings.registry_account}/{settings.image_name}:{tag}',
    )
    logger.debug(f'Initialized environment for run #{run_number}: {tag}')
    return env


__all__ = ['EnvironmentContext', 'build_identifier', 'initialize']
