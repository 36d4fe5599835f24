class PipelineError(Exception):
    """Base class for failures surfaced to the caller of the upload pipeline."""

    kind = "PipelineError"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class UnsupportedFileKind(PipelineError):
    """The upload is neither a PDF nor a PPTX. Raised before any extraction."""

    kind = "UnsupportedFileKind"


class ExtractionFailure(PipelineError):
    """The document could not be read, or held too little text to be worth a model call."""

    kind = "ExtractionFailure"


class GenerationFailure(PipelineError):
    """The Gemini call itself failed (network, auth, quota, missing key)."""

    kind = "GenerationFailure"


class MalformedResponse(PipelineError):
    """Gemini answered, but the payload is not valid JSON in the StructuredNotes shape."""

    kind = "MalformedResponse"


class PublishFailure(PipelineError):
    """A Google Classroom post failed for one artifact ("notes" or "questions")."""

    kind = "PublishFailure"

    def __init__(self, artifact: str, message: str):
        super().__init__(message)
        self.artifact = artifact
