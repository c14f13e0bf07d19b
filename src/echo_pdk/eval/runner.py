"""Eval suite runner.

For each test in a suite:

1. Resolve variables from ``given`` or a dataset parameter set.
2. Render the suite's target template.
3. Check ``expect_render`` assertions against the rendered prompt.
4. For ``expect_llm``, send the prompt to the completion provider, record
   the response as the dataset golden in record mode, and check the
   assertions against the completion.

Suites live in ``<prompt>/eval/tests/``; the prompt directory is two
levels above the directory holding the suite file.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from echo_pdk.ai_judge import JudgeCache, create_ai_judge
from echo_pdk.config import EchoConfig
from echo_pdk.dsl.imports import FileImportLoader
from echo_pdk.engine import Echo, create_echo
from echo_pdk.eval.assertions import AssertionContext, run_assertions
from echo_pdk.eval.dataset import DatasetManager
from echo_pdk.eval.loader import load_eval_file
from echo_pdk.eval.models import (
    AssertionResult,
    EvalStatus,
    EvalSuite,
    EvalSuiteResult,
    EvalSummary,
    EvalTest,
    EvalTestResult,
    combine_statuses,
)
from echo_pdk.exceptions import EvalLoadError
from echo_pdk.logging import get_logger
from echo_pdk.plugins import EchoPlugin
from echo_pdk.protocols import AIProvider, CompletionProvider
from echo_pdk.providers.types import (
    ChatMessage,
    CompletionOptions,
    CompletionResponse,
    ProviderConfig,
)

__all__ = [
    "EvalRunnerConfig",
    "run_eval_file",
    "run_eval_suite",
    "prompt_dir_for",
]

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class EvalRunnerConfig:
    """Options for one eval run.

    Attributes:
        filter: Only run tests whose name contains this (case-insensitive).
        record: Save completions as dataset goldens.
        model: Model used when the suite does not name one.
    """

    filter: str | None = None
    record: bool = False
    model: str | None = None


def prompt_dir_for(eval_path: Path) -> Path:
    """``<prompt>/eval/tests/x.eval`` -> ``<prompt>``."""
    return eval_path.resolve().parent.parent.parent


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


@dataclass
class _TestRun:
    echo: Echo
    template: str
    datasets: DatasetManager
    suite: EvalSuite
    config: EvalRunnerConfig
    completion_provider: CompletionProvider | None
    judge: AIProvider | None

    async def variables_for(self, test: EvalTest) -> dict[str, Any]:
        if test.given is not None:
            return dict(test.given)
        if test.dataset and test.params:
            return await asyncio.to_thread(
                self.datasets.get_params, test.dataset, test.params
            )
        if test.dataset:
            dataset = await asyncio.to_thread(self.datasets.load, test.dataset)
            if not dataset.parameters:
                raise EvalLoadError(
                    f'Dataset "{test.dataset}" has no parameter sets'
                )
            first = dataset.parameters[0]
            return {k: v for k, v in first.items() if k != "name"}
        return {}

    async def complete(self, prompt: str) -> CompletionResponse:
        assert self.completion_provider is not None
        options = CompletionOptions(model=self.suite.config.model or self.config.model)
        messages = [ChatMessage(role="user", content=prompt)]
        timeout = self.suite.config.timeout
        async with asyncio.timeout(timeout):
            return await self.completion_provider.complete(messages, options)

    async def llm_assertions(
        self, test: EvalTest, rendered: str
    ) -> tuple[list[AssertionResult], str | None]:
        assert test.expect_llm
        if self.completion_provider is None:
            return [
                AssertionResult(
                    operator="llm_call",
                    status=EvalStatus.ERROR,
                    message="No completion provider configured",
                )
            ], None

        results: list[AssertionResult] = []
        response: CompletionResponse | None = None
        try:
            response = await self.complete(rendered)
        except Exception as e:
            logger.warning("eval_llm_call_failed", test=test.name, error=str(e))
            message = str(e) or type(e).__name__
            results.append(
                AssertionResult(
                    operator="llm_call",
                    status=EvalStatus.ERROR,
                    message=f"LLM call failed: {message}",
                )
            )

        if response is not None and self.config.record and test.dataset:
            await asyncio.to_thread(
                self.datasets.record_golden, test.dataset, response
            )

        text = response.text if response is not None else ""
        ctx = AssertionContext(text=text, response=response, judge=self.judge)
        results.extend(await run_assertions(test.expect_llm, ctx))
        return results, text

    async def run(self, test: EvalTest) -> EvalTestResult:
        start = time.perf_counter()
        logger.debug("eval_test_start", test=test.name)
        try:
            variables = await self.variables_for(test)
            rendered = await self.echo.render(self.template, variables)

            assertions: list[AssertionResult] = []
            if test.expect_render:
                ctx = AssertionContext(text=rendered, judge=self.judge)
                assertions.extend(await run_assertions(test.expect_render, ctx))

            llm_text: str | None = None
            if test.expect_llm:
                llm_results, llm_text = await self.llm_assertions(test, rendered)
                assertions.extend(llm_results)
        except Exception as e:
            logger.debug("eval_test_error", test=test.name, error=str(e))
            return EvalTestResult(
                name=test.name,
                status=EvalStatus.ERROR,
                duration_ms=_elapsed_ms(start),
                error=getattr(e, "message", None) or str(e) or type(e).__name__,
            )

        return EvalTestResult(
            name=test.name,
            status=combine_statuses(a.status for a in assertions),
            assertions=tuple(assertions),
            duration_ms=_elapsed_ms(start),
            rendered_output=rendered,
            llm_response=llm_text,
        )


async def run_eval_suite(
    suite: EvalSuite,
    eval_path: Path,
    config: EvalRunnerConfig | None = None,
    *,
    echo_config: EchoConfig | None = None,
    completion_provider: CompletionProvider | None = None,
    ai_judge: AIProvider | None = None,
    plugins: Sequence[EchoPlugin] = (),
) -> EvalSuiteResult:
    """Run every (filtered) test of a suite.

    Args:
        suite: Loaded suite.
        eval_path: Path of the suite file; locates the prompt directory.
        config: Filter, record and model options.
        echo_config: Engine settings. Defaults to ``EchoConfig()``.
        completion_provider: LLM back end for ``expect_llm`` tests. Also
            backs the judge for AI conditions when ``echo_config.ai_provider``
            is set, and the judge for AI assertions in any case.
        ai_judge: Explicit judge for AI conditions and AI assertions.
        plugins: Plugins loaded into the engine before any test runs.

    Returns:
        EvalSuiteResult. A missing target template gives an error result
        with no tests; test failures never raise.
    """
    config = config or EvalRunnerConfig()
    start = time.perf_counter()
    prompt_dir = prompt_dir_for(eval_path)
    target = prompt_dir / suite.config.target

    try:
        template = await asyncio.to_thread(target.read_text, encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        logger.warning("eval_target_unreadable", target=str(target), error=str(e))
        return EvalSuiteResult(
            suite_name=suite.suite,
            status=EvalStatus.ERROR,
            tests=(),
            summary=EvalSummary.from_tests((), _elapsed_ms(start)),
            error=f"Failed to load target prompt: {target}",
        )

    echo_config = echo_config if echo_config is not None else EchoConfig()
    echo = create_echo(
        echo_config,
        completion_provider=completion_provider,
        ai_judge=ai_judge,
        import_loader=FileImportLoader(root=echo_config.import_root or prompt_dir),
    )
    for plugin in plugins:
        await echo.load_plugin(plugin)

    judge = echo.ai_judge
    if judge is None and completion_provider is not None:
        judge_config = ProviderConfig(model=config.model)
        judge = create_ai_judge(judge_config, completion_provider, JudgeCache())

    run = _TestRun(
        echo=echo,
        template=template,
        datasets=DatasetManager(prompt_dir),
        suite=suite,
        config=config,
        completion_provider=completion_provider,
        judge=judge,
    )

    tests = suite.tests
    if config.filter:
        pattern = config.filter.lower()
        tests = [t for t in tests if pattern in t.name.lower()]

    logger.info("eval_suite_start", suite=suite.suite, tests=len(tests))
    results = tuple([await run.run(test) for test in tests])
    summary = EvalSummary.from_tests(results, _elapsed_ms(start))
    status = combine_statuses(r.status for r in results)
    logger.info(
        "eval_suite_complete",
        suite=suite.suite,
        status=status.value,
        passed=summary.passed,
        failed=summary.failed,
        errored=summary.errored,
    )
    return EvalSuiteResult(
        suite_name=suite.suite, status=status, tests=results, summary=summary
    )


async def run_eval_file(
    eval_path: Path,
    config: EvalRunnerConfig | None = None,
    **kwargs: Any,
) -> EvalSuiteResult:
    """Load a suite file and run it.

    Keyword arguments are passed to ``run_eval_suite``.

    Raises:
        EvalLoadError: If the suite file is unreadable or malformed.
    """
    suite = await asyncio.to_thread(load_eval_file, eval_path)
    return await run_eval_suite(suite, eval_path, config, **kwargs)
