from __future__ import annotations


class PreprocessError(Exception):
    """Base class for failures raised by the preprocessing core."""


class ValidationError(PreprocessError):
    """Input is missing, oversized or not an accepted raster format."""


class DecodeError(PreprocessError):
    """The codec could not parse the input bytes."""


class TransformError(PreprocessError):
    """A transform or encode step failed; the run is aborted."""


class AnalysisDegraded(PreprocessError):
    """A single quality axis could not be computed. Absorbed by the analyzer."""


class RotationUncertain(PreprocessError):
    """Orientation could not be inferred. Absorbed by the detector."""
