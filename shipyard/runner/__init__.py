from shipyard.runner.runner import PipelineRun, PipelineRunner

__all__ = ['PipelineRun', 'PipelineRunner']
