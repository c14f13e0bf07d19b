"""Formatting of eval suite results.

- console: Rich markup for humans (plain text when piped)
- json: structured data for scripts
- junit: JUnit XML for CI systems
"""

from __future__ import annotations

import json
from dataclasses import asdict
from enum import Enum
from xml.sax.saxutils import escape, quoteattr

from rich.markup import escape as escape_markup

from echo_pdk.eval.models import EvalStatus, EvalSuiteResult

__all__ = [
    "EvalReporter",
    "format_console",
    "format_json",
    "format_junit",
    "format_results",
]

_RULE = "-" * 60

_ICONS: dict[EvalStatus, str] = {
    EvalStatus.PASS: "[green]✓[/green]",
    EvalStatus.FAIL: "[red]✗[/red]",
    EvalStatus.ERROR: "[yellow]![/yellow]",
}

#: Operators whose verdict is shown even when they pass
_ALWAYS_SHOWN = frozenset({"llm_judge", "sentiment"})


class EvalReporter(str, Enum):
    """Supported output formats for eval results."""

    CONSOLE = "console"
    JSON = "json"
    JUNIT = "junit"


def _indented(label: str, text: str) -> list[str]:
    lines = [f"    [dim]{label}:[/dim]"]
    lines.extend(f"    [dim]  {escape_markup(line)}[/dim]" for line in text.split("\n"))
    return lines


def format_console(result: EvalSuiteResult) -> str:
    """Format a suite result as Rich console markup."""
    lines = [f"[bold]{_ICONS[result.status]} {escape_markup(result.suite_name)}[/bold]"]
    lines.append(f"[dim]{_RULE}[/dim]")
    if result.error:
        lines.append(f"  [red]Error: {escape_markup(result.error)}[/red]")

    for test in result.tests:
        lines.append(
            f"  {_ICONS[test.status]} {escape_markup(test.name)} "
            f"[dim]({test.duration_ms}ms)[/dim]"
        )
        if test.error:
            lines.append(f"    [red]Error: {escape_markup(test.error)}[/red]")
        if test.rendered_output is not None:
            lines.extend(_indented("Rendered prompt", test.rendered_output))
        if test.llm_response is not None:
            lines.extend(
                _indented("LLM response", test.llm_response or "(empty response)")
            )

        for assertion in test.assertions:
            if assertion.passed and assertion.operator not in _ALWAYS_SHOWN:
                continue
            message = assertion.message or (
                "passed" if assertion.passed else f"{assertion.operator} failed"
            )
            lines.append(
                f"    {_ICONS[assertion.status]} {assertion.operator}: "
                f"{escape_markup(message)}"
            )
            if assertion.passed:
                continue
            if assertion.expected:
                lines.append(
                    f"      [dim]expected: {escape_markup(assertion.expected)}[/dim]"
                )
            if assertion.actual:
                lines.append(
                    f"      [dim]actual:   {escape_markup(assertion.actual)}[/dim]"
                )

    summary = result.summary
    parts = []
    if summary.passed:
        parts.append(f"[green]{summary.passed} passed[/green]")
    if summary.failed:
        parts.append(f"[red]{summary.failed} failed[/red]")
    if summary.errored:
        parts.append(f"[yellow]{summary.errored} errored[/yellow]")
    parts.append(f"{summary.total} total")
    lines.append(f"[dim]{_RULE}[/dim]")
    lines.append(f"  {', '.join(parts)} [dim]({summary.duration_ms}ms)[/dim]")
    return "\n".join(lines)


def format_json(result: EvalSuiteResult) -> str:
    return json.dumps(asdict(result), indent=2)


def _seconds(ms: int) -> str:
    return f"{ms / 1000:.3f}"


def format_junit(result: EvalSuiteResult) -> str:
    """Format a suite result as a JUnit ``<testsuite>`` document.

    A suite that could not run at all is reported with one errored
    test case carrying the suite error.
    """
    summary = result.summary
    errors = summary.errored + (1 if result.error else 0)
    lines = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        f"<testsuite name={quoteattr(result.suite_name)}"
        f' tests="{summary.total}"'
        f' failures="{summary.failed}" errors="{errors}"'
        f' time="{_seconds(summary.duration_ms)}">',
    ]

    if result.error:
        lines.append(f"  <testcase name={quoteattr(result.suite_name)}>")
        lines.append(
            f"    <error message={quoteattr(result.error)}>"
            f"{escape(result.error)}</error>"
        )
        lines.append("  </testcase>")

    for test in result.tests:
        lines.append(
            f"  <testcase name={quoteattr(test.name)}"
            f' time="{_seconds(test.duration_ms)}">'
        )
        if test.status is EvalStatus.FAIL:
            failed = [a for a in test.assertions if a.status is EvalStatus.FAIL]
            message = "; ".join(a.message or f"{a.operator} failed" for a in failed)
            lines.append(f"    <failure message={quoteattr(message)}>")
            for a in failed:
                lines.append(f"      [{a.operator}] {escape(a.message or 'failed')}")
                if a.expected:
                    lines.append(f"        expected: {escape(a.expected)}")
                if a.actual:
                    lines.append(f"        actual: {escape(a.actual)}")
            lines.append("    </failure>")
        elif test.status is EvalStatus.ERROR:
            errored = [a for a in test.assertions if a.status is EvalStatus.ERROR]
            message = test.error or "; ".join(
                a.message or f"{a.operator} errored" for a in errored
            )
            lines.append(
                f"    <error message={quoteattr(message)}>{escape(message)}</error>"
            )
        lines.append("  </testcase>")

    lines.append("</testsuite>")
    return "\n".join(lines)


def format_results(
    result: EvalSuiteResult, reporter: EvalReporter | str = EvalReporter.CONSOLE
) -> str:
    """Format with the named reporter.

    Raises:
        ValueError: If the reporter name is unknown.
    """
    reporter = EvalReporter(reporter)
    if reporter is EvalReporter.JSON:
        return format_json(result)
    if reporter is EvalReporter.JUNIT:
        return format_junit(result)
    return format_console(result)
