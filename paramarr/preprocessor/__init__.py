"""Batch driver: resolve whole spec directories."""

from paramarr.preprocessor.service import (
    SPEC_EXTENSIONS,
    Preprocessor,
    default_output_path,
    is_spec_file,
)

__all__ = ["Preprocessor", "SPEC_EXTENSIONS", "default_output_path", "is_spec_file"]
