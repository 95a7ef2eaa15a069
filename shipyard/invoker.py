import logging
import os
from asyncio import create_subprocess_exec
from pathlib import Path
from pydantic import BaseModel
from subprocess import DEVNULL, PIPE, STDOUT

from shipyard.environment import EnvironmentContext
from shipyard.exceptions import ToolExecutionError

logger = logging.getLogger(__name__)


class ToolInvocationResult(BaseModel):
    command: list[str]
    exit_code: int
    output: str


class ToolInvoker:
    """Runs external tools one at a time and classifies them by exit code.

    ``${VAR}`` references in the command, its arguments and its stdin are
    resolved from the environment context before anything is started. Output
    is masked and then cut to its last ``output_limit`` characters.
    """

    output_limit: int

    def __init__(self, output_limit: int = 1024 * 1024):
        self.output_limit = output_limit

    async def run(
        self,
        command: str,
        *args: str | Path,
        env: EnvironmentContext,
        cwd: Path | str,
        input: str | None = None,
        stdout_only: bool = False,
    ) -> ToolInvocationResult:
        argv = [env.substitute(str(x)) for x in (command, *args)]
        if input is not None:
            input = env.substitute(input)
        masked = [env.mask(x) for x in argv]
        logger.info(f'Running {" ".join(masked)}')

        exit_code, output = await self._execute(
            argv,
            env=os.environ | env.as_env(),
            cwd=cwd,
            input=input.encode() if input is not None else None,
            stdout_only=stdout_only,
        )
        output = self._truncate(env.mask(output.decode(errors='replace')))
        if output:
            logger.debug(output)
        if exit_code:
            logger.error(f'Process exited with code {exit_code}')
            raise ToolExecutionError(masked, exit_code, output)
        return ToolInvocationResult(command=masked, exit_code=exit_code, output=output)

    async def _execute(
        self,
        argv: list[str],
        *,
        env: dict[str, str],
        cwd: Path | str,
        input: bytes | None,
        stdout_only: bool,
    ) -> tuple[int, bytes]:
        try:
            p = await create_subprocess_exec(
                *argv,
                cwd=cwd,
                stdin=PIPE if input is not None else DEVNULL,
                stdout=PIPE,
                stderr=PIPE if stdout_only else STDOUT,
                env=env,
            )
        except OSError as e:
            # same code a shell reports for a missing command
            return 127, str(e).encode()
        stdout, stderr = await p.communicate(input)
        if stdout_only and p.returncode and stderr:
            stdout += stderr
        return p.returncode, stdout

    def _truncate(self, output: str) -> str:
        if len(output) <= self.output_limit:
            return output
        return output[-self.output_limit :]


__all__ = ['ToolInvocationResult', 'ToolInvoker']
