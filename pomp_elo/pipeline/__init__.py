"""End-to-end fitting pipeline."""

from .fit import FitConfig, FitPipeline, run_fit_pipeline_to_file

__all__ = ["FitConfig", "FitPipeline", "run_fit_pipeline_to_file"]
