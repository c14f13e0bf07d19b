"""Eval suites: regression tests for prompt templates.

A suite (``<prompt>/eval/tests/*.eval``) lists test cases with variables
and assertions on the rendered prompt and, optionally, on an LLM
completion of it. Datasets (``<prompt>/eval/datasets/*.dset``) hold
reusable parameter sets and a recorded golden response.
"""

from __future__ import annotations

from echo_pdk.eval.assertions import (
    ASSERTION_HANDLERS,
    AssertionContext,
    run_assertion,
    run_assertions,
)
from echo_pdk.eval.dataset import DatasetManager
from echo_pdk.eval.loader import (
    load_dataset_file,
    load_eval_file,
    parse_dataset_content,
    parse_eval_content,
)
from echo_pdk.eval.models import (
    AssertionResult,
    EvalAssertion,
    EvalDataset,
    EvalGolden,
    EvalStatus,
    EvalSuite,
    EvalSuiteConfig,
    EvalSuiteResult,
    EvalSummary,
    EvalTest,
    EvalTestResult,
)
from echo_pdk.eval.reporter import (
    EvalReporter,
    format_console,
    format_json,
    format_junit,
    format_results,
)
from echo_pdk.eval.runner import EvalRunnerConfig, run_eval_file, run_eval_suite

__all__ = [
    "ASSERTION_HANDLERS",
    "AssertionContext",
    "AssertionResult",
    "DatasetManager",
    "EvalAssertion",
    "EvalDataset",
    "EvalGolden",
    "EvalReporter",
    "EvalRunnerConfig",
    "EvalStatus",
    "EvalSuite",
    "EvalSuiteConfig",
    "EvalSuiteResult",
    "EvalSummary",
    "EvalTest",
    "EvalTestResult",
    "format_console",
    "format_json",
    "format_junit",
    "format_results",
    "load_dataset_file",
    "load_eval_file",
    "parse_dataset_content",
    "parse_eval_content",
    "run_assertion",
    "run_assertions",
    "run_eval_file",
    "run_eval_suite",
]
