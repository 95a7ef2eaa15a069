import os
import shutil
import yaml
from pathlib import Path
from pydantic import AfterValidator, field_validator
from pydantic_core.core_schema import ValidationInfo
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Annotated

from shipyard.exceptions import ConfigurationError


def get_bin(name: str) -> str:
    return shutil.which(name) or name


config_home = Path(os.getenv('XDG_CONFIG_HOME') or os.path.expanduser('~/.config'))
data_home = Path(os.getenv('XDG_DATA_HOME') or os.path.expanduser('~/.local/share'))


class Config(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix='SHIPYARD_', env_file='.env', extra='ignore'
    )

    host: str = '127.0.0.1'
    port: int = 8080
    debug: bool = False

    data_dir: Annotated[Path, AfterValidator(lambda path: path.absolute())] = (
        data_home / 'shipyard'
    )
    workspaces_dir: Path = None
    artifacts_dir: Path = None
    credentials_file: Path = config_home / 'shipyard' / 'credentials.yml'

    mvn: str = None
    git: str = None
    docker: str = None
    kubectl: str = None
    sonar_scanner_home: Path = Path('/opt/sonar-scanner')

    docker_client_timeout: int = 1000
    compose_http_timeout: int = 1000

    image_name: str = 'orders'
    registry_account: str = 'shipyard'
    base_image: str = 'openjdk:23-rc-jdk-slim'
    k8s_namespace: str = 'minikube-local'
    sonar_host_url: str = 'http://localhost:9000'
    sonar_java_binaries: str = 'target/classes'
    deployment_manifest: str = 'k8s/deployment.yaml'
    service_manifest: str = 'k8s/service.yaml'

    git_credentials_id: str | None = None
    sonar_credentials_id: str = 'sonarpwd'
    docker_credentials_id: str = 'dockerpwd'
    kube_credentials_id: str = 'kubectlpwd'

    downstream_pipeline: str = 'DevSecOps-Pipeline'
    # formatted with name=<downstream_pipeline>
    downstream_url: str | None = None
    notify_url: str | None = None

    output_limit: int = 1024 * 1024

    # noinspection PyNestedDecorators
    @field_validator('mvn', 'git', 'docker', 'kubectl', mode='before')
    @classmethod
    def default_bins(cls, v: str | None, info: ValidationInfo):
        if v is not None:
            return v
        return get_bin(info.field_name)

    # noinspection PyNestedDecorators
    @field_validator('workspaces_dir', 'artifacts_dir', mode='before')
    @classmethod
    def default_dirs(cls, v: Path | None, info: ValidationInfo):
        if 'data_dir' not in info.data:
            # data_dir errors are reported on their own
            return ''
        if v is None:
            res = info.data['data_dir'] / info.field_name.removesuffix('_dir')
        else:
            res = Path(v)
        res.mkdir(parents=True, exist_ok=True)
        return res


def load_config() -> Config:
    config_file = config_home / 'shipyard' / 'config.yml'
    if config_file.is_file():
        try:
            config_values = yaml.safe_load(config_file.read_text()) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f'{config_file}: {e}')
    else:
        config_values = {}
    return Config(**config_values)


config = load_config()

__all__ = ['Config', 'config', 'get_bin', 'load_config']
