import base64
import logging
import os
import tempfile
import yaml
from contextlib import ExitStack, asynccontextmanager
from pathlib import Path
from pydantic import BaseModel, ValidationError
from typing import AsyncIterator, Iterable

from shipyard.environment import EnvironmentContext
from shipyard.exceptions import CredentialResolutionError

logger = logging.getLogger(__name__)


class Credential(BaseModel):
    username: str | None = None
    password: str | None = None
    secret: str | None = None


class SecretStore:
    """Credentials from a YAML file keyed by credentials id.

    The file is read on every lookup so nothing outlives the scope that
    asked for it.
    """

    path: Path

    def __init__(self, path: Path):
        self.path = path

    def resolve(self, credentials_id: str) -> Credential:
        if not self.path.is_file():
            raise CredentialResolutionError(
                credentials_id, f'{self.path} does not exist'
            )
        try:
            data = yaml.safe_load(self.path.read_text()) or {}
        except yaml.YAMLError as e:
            raise CredentialResolutionError(credentials_id, str(e))
        if not isinstance(data, dict) or credentials_id not in data:
            raise CredentialResolutionError(credentials_id, 'not found')
        try:
            return Credential.model_validate(data[credentials_id])
        except ValidationError as e:
            # the input is the secret itself, keep it out of the message
            problems = ', '.join(
                f'{".".join(map(str, x["loc"])) or "entry"}: {x["type"]}'
                for x in e.errors(include_input=False)
            )
            raise CredentialResolutionError(
                credentials_id, f'malformed entry ({problems})'
            ) from None


def _require(credential: Credential, credentials_id: str, *fields: str):
    values = []
    for field in fields:
        if (value := getattr(credential, field)) is None:
            raise CredentialResolutionError(credentials_id, f'{field} is missing')
        values.append(value)
    return values


class Binding:
    credentials_id: str
    secret_variables: tuple[str, ...] = ()

    def bind(
        self, store: SecretStore, env: EnvironmentContext, stack: ExitStack
    ) -> dict[str, str]:
        raise NotImplementedError


class UsernamePassword(Binding):
    def __init__(
        self, credentials_id: str, username_variable: str, password_variable: str
    ):
        self.credentials_id = credentials_id
        self.username_variable = username_variable
        self.password_variable = password_variable
        self.secret_variables = (password_variable,)

    def bind(self, store, env, stack):
        username, password = _require(
            store.resolve(self.credentials_id),
            self.credentials_id,
            'username',
            'password',
        )
        return {self.username_variable: username, self.password_variable: password}


class SecretText(Binding):
    def __init__(self, credentials_id: str, variable: str):
        self.credentials_id = credentials_id
        self.variable = variable
        self.secret_variables = (variable,)

    def bind(self, store, env, stack):
        (secret,) = _require(
            store.resolve(self.credentials_id), self.credentials_id, 'secret'
        )
        return {self.variable: secret}


class SonarEnv(SecretText):
    def __init__(self, credentials_id: str, host_url: str):
        super().__init__(credentials_id, 'SONAR_TOKEN')
        self.host_url = host_url

    def bind(self, store, env, stack):
        res = super().bind(store, env, stack)
        res['SONAR_HOST_URL'] = self.host_url
        return res


class GitCredentials(Binding):
    """HTTP basic auth for git, passed through GIT_CONFIG_* variables
    so it never shows up in the process arguments."""

    secret_variables = ('GIT_CONFIG_VALUE_0',)

    def __init__(self, credentials_id: str):
        self.credentials_id = credentials_id

    def bind(self, store, env, stack):
        username, password = _require(
            store.resolve(self.credentials_id),
            self.credentials_id,
            'username',
            'password',
        )
        token = base64.b64encode(f'{username}:{password}'.encode()).decode()
        return {
            'GIT_CONFIG_COUNT': '1',
            'GIT_CONFIG_KEY_0': 'http.extraHeader',
            'GIT_CONFIG_VALUE_0': f'Authorization: Basic {token}',
        }


class KubeConfig(Binding):
    """Writes a throwaway kubeconfig for the cluster at ``server_url``
    and exports it as KUBECONFIG."""

    secret_variables = ('KUBE_TOKEN',)

    def __init__(self, credentials_id: str, server_url: str, namespace: str):
        self.credentials_id = credentials_id
        self.server_url = server_url
        self.namespace = namespace

    def bind(self, store, env, stack):
        (token,) = _require(
            store.resolve(self.credentials_id), self.credentials_id, 'secret'
        )
        server_url = env.substitute(self.server_url)
        tempdir = stack.enter_context(tempfile.TemporaryDirectory())
        path = os.path.join(tempdir, 'kubeconfig')
        kubeconfig = {
            'apiVersion': 'v1',
            'kind': 'Config',
            'clusters': [{'name': 'shipyard', 'cluster': {'server': server_url}}],
            'users': [{'name': 'shipyard', 'user': {'token': token}}],
            'contexts': [
                {
                    'name': 'shipyard',
                    'context': {
                        'cluster': 'shipyard',
                        'user': 'shipyard',
                        'namespace': self.namespace,
                    },
                }
            ],
            'current-context': 'shipyard',
        }
        with open(os.open(path, os.O_WRONLY | os.O_CREAT, 0o600), 'w') as f:
            yaml.safe_dump(kubeconfig, f)
        return {'KUBE_TOKEN': token, 'KUBECONFIG': path}


@asynccontextmanager
async def with_credentials(
    env: EnvironmentContext, bindings: Iterable[Binding], store: SecretStore
) -> AsyncIterator[EnvironmentContext]:
    with ExitStack() as stack:
        values = {}
        secret_keys = set()
        for binding in bindings:
            values |= binding.bind(store, env, stack)
            secret_keys.update(binding.secret_variables)
        scoped = env.child(values, secret_keys=secret_keys)
        logger.debug(f'Bound credentials {sorted(values)}')
        try:
            yield scoped
        finally:
            scoped.revoke()


__all__ = [
    'Binding',
    'Credential',
    'GitCredentials',
    'KubeConfig',
    'SecretStore',
    'SecretText',
    'SonarEnv',
    'UsernamePassword',
    'with_credentials',
]
