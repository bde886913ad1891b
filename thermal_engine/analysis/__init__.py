"""
Analysis Module
===============

Studies built on repeated solver runs.
"""

from .parameters import EntityType, ParameterRef, collect_parameters, get_value, set_values, apply_deltas
from .sensitivity import (
    BaselineHandle,
    Confidence,
    Metric,
    SensitivityEngine,
    SensitivityMatrix,
    WhatIfResult,
    reconstruct,
)
from .design_space import (
    DesignSpaceExplorer,
    ExplorationConfig,
    ExplorationConstraint,
    ExplorationParameter,
    ExplorationResult,
    SampleResult,
    SamplingMethod,
)
from .failure_modes import FailureModeParams, FailureScenario, FailureType, apply_failure_mode, run_failure_analysis
from .benchmarks import BenchmarkResult, run_benchmark_suite, format_benchmark_table

__all__ = [
    'EntityType', 'ParameterRef', 'collect_parameters', 'get_value', 'set_values', 'apply_deltas',
    'BaselineHandle', 'Confidence', 'Metric', 'SensitivityEngine', 'SensitivityMatrix',
    'WhatIfResult', 'reconstruct',
    'DesignSpaceExplorer', 'ExplorationConfig', 'ExplorationConstraint', 'ExplorationParameter',
    'ExplorationResult', 'SampleResult', 'SamplingMethod',
    'FailureModeParams', 'FailureScenario', 'FailureType', 'apply_failure_mode', 'run_failure_analysis',
    'BenchmarkResult', 'run_benchmark_suite', 'format_benchmark_table',
]
