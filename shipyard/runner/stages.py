import logging
import shutil

from shipyard.credentials import GitCredentials, KubeConfig, SonarEnv, UsernamePassword
from shipyard.exceptions import StageError
from shipyard.runner.stage import Stage, StageRunner
from shipyard.runner.utils import describe_dir, render_manifest
from shipyard.schemas import DownstreamParameters

logger = logging.getLogger(__name__)


async def clean_workspace(stage: StageRunner):
    if stage.workspace.exists():
        shutil.rmtree(stage.workspace)
    stage.workspace.mkdir(parents=True)


async def compute_environment(stage: StageRunner):
    env = stage.env
    logger.info(f'Docker client timeout: {env.get("DOCKER_CLIENT_TIMEOUT")}')
    logger.info(f'Compose HTTP timeout: {env.get("COMPOSE_HTTP_TIMEOUT")}')
    logger.info(f'Build identifier: {env.get("IMAGE_TAG")}')


async def discover_cluster_endpoint(stage: StageRunner):
    server_url = (
        await stage.sh(
            '${KUBECTL_HOME}',
            'config',
            'view',
            '--minify',
            '-o',
            'jsonpath={.clusters[0].cluster.server}',
            stdout_only=True,
        )
    ).strip()
    if not server_url:
        raise StageError('kubectl reported no API server URL for the current cluster')
    logger.info(f'Kubernetes API server URL: {server_url}')
    stage.env.set('KUBE_SERVER_URL', server_url)


async def build(stage: StageRunner):
    bindings = []
    if stage.settings.git_credentials_id:
        bindings.append(GitCredentials(stage.settings.git_credentials_id))
    async with stage.with_credentials(*bindings) as env:
        await stage.sh(
            '${GIT}',
            'clone',
            '--branch',
            '${GIT_BRANCH}',
            '--single-branch',
            '${GIT_URL}',
            '.',
            env=env,
        )
    await stage.sh('${MVN}', 'clean', 'install')
    logger.info(describe_dir(stage.workspace / 'target'))


async def run_tests(stage: StageRunner):
    await stage.sh('${MVN}', 'test')


async def scan(stage: StageRunner):
    binding = SonarEnv(
        stage.settings.sonar_credentials_id, stage.settings.sonar_host_url
    )
    async with stage.with_credentials(binding) as env:
        await stage.sh(
            '${SONAR_SCANNER_HOME}/bin/sonar-scanner',
            '-Dsonar.projectKey=${SONAR_PROJECT_KEY}',
            '-Dsonar.java.binaries=${SONAR_JAVA_BINARIES}',
            env=env,
        )


async def clean_docker_state(stage: StageRunner):
    await stage.sh('${DOCKER_HOME}', 'system', 'prune', '-af', '--volumes')


async def build_image(stage: StageRunner):
    await stage.sh('${DOCKER_HOME}', 'pull', '${BASE_IMAGE}')
    await stage.sh('${DOCKER_HOME}', 'network', 'prune', '--force')
    logger.info(describe_dir(stage.workspace / 'target'))
    await stage.sh('${DOCKER_HOME}', 'build', '-t', '${IMAGE_NAME}:${IMAGE_TAG}', '.')


async def push_image(stage: StageRunner):
    binding = UsernamePassword(
        stage.settings.docker_credentials_id,
        'REGISTRY_USERNAME',
        'REGISTRY_PASSWORD',
    )
    async with stage.with_credentials(binding) as env:
        await stage.sh(
            '${DOCKER_HOME}',
            'login',
            '-u',
            '${REGISTRY_USERNAME}',
            '--password-stdin',
            input='${REGISTRY_PASSWORD}',
            env=env,
        )
        await stage.sh(
            '${DOCKER_HOME}', 'tag', '${IMAGE_NAME}:${IMAGE_TAG}', '${DOCKER_IMAGE}'
        )
        await stage.sh('${DOCKER_HOME}', 'push', '${DOCKER_IMAGE}')

        dangling = (
            await stage.sh(
                '${DOCKER_HOME}',
                'images',
                '-f',
                'dangling=true',
                '-q',
                stdout_only=True,
            )
        ).split()
        if dangling:
            await stage.sh('${DOCKER_HOME}', 'rmi', '-f', *dangling)
        else:
            logger.info('No dangling images to remove')


async def trigger_downstream(stage: StageRunner):
    parameters = stage.parameters
    stage.runner.downstream.trigger(
        stage.settings.downstream_pipeline,
        DownstreamParameters(
            repository_url=parameters.repository_url,
            branch=parameters.branch,
            scanner_project_key=parameters.scanner_project_key,
            image_reference=stage.env.get('DOCKER_IMAGE'),
        ),
    )


async def deploy(stage: StageRunner):
    settings = stage.settings
    binding = KubeConfig(
        settings.kube_credentials_id, '${KUBE_SERVER_URL}', settings.k8s_namespace
    )
    async with stage.with_credentials(binding) as env:
        manifest = stage.workspace / settings.deployment_manifest
        render_manifest(manifest, env.get('IMAGE_TAG'))
        logger.info(manifest.read_text())
        await stage.sh(
            '${KUBECTL_HOME}', 'get', 'pods', '-n', '${K8S_NAMESPACE}', env=env
        )
        for path in (settings.deployment_manifest, settings.service_manifest):
            await stage.sh(
                '${KUBECTL_HOME}',
                'apply',
                '-f',
                path,
                '-n',
                '${K8S_NAMESPACE}',
                env=env,
            )


STAGES = [
    Stage('workspace-clean', clean_workspace),
    Stage('compute-environment', compute_environment),
    Stage('discover-cluster-endpoint', discover_cluster_endpoint),
    Stage('build', build),
    Stage('test', run_tests, when=lambda parameters: not parameters.skip_tests),
    Stage('scan', scan),
    Stage('clean-docker-state', clean_docker_state),
    Stage('build-image', build_image),
    Stage('push-image', push_image),
    Stage('trigger-downstream', trigger_downstream),
    Stage('deploy', deploy),
]

__all__ = ['STAGES']
