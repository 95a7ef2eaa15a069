class PipelineError(Exception):
    pass


class ConfigurationError(PipelineError):
    pass


class ConfigurationConflict(PipelineError):
    def __init__(self, key: str):
        super().__init__(f'Variable {key} is already set')
        self.key = key


class UndefinedVariable(PipelineError):
    def __init__(self, key: str):
        super().__init__(f'Variable {key} is not defined')
        self.key = key


class CredentialResolutionError(PipelineError):
    def __init__(self, credentials_id: str, reason: str):
        super().__init__(f'Cannot resolve credentials {credentials_id!r}: {reason}')
        self.credentials_id = credentials_id


class ToolExecutionError(PipelineError):
    """An external process exited with a non-zero code.

    ``command`` is already masked and safe to log.
    """

    def __init__(self, command: list[str], exit_code: int, output: str):
        super().__init__(f'{command[0]} exited with code {exit_code}')
        self.command = command
        self.exit_code = exit_code
        self.output = output


class StageError(PipelineError):
    pass
