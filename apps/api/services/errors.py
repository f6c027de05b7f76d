"""Pipeline stage errors."""


class PipelineError(Exception):
    """A pipeline stage could not turn the model output into usable data."""


class ExtractionError(PipelineError):
    pass


class GenerationError(PipelineError):
    pass
