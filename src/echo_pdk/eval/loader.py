"""Loading of ``.eval`` suites and ``.dset`` datasets.

Both formats are YAML. Content is parsed with ``yaml.safe_load``, checked
for the required fields, then validated into the Pydantic models. Every
failure is reported as an EvalLoadError naming the source file.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ValidationError

from echo_pdk.constants import EVAL_ASSERTION_OPERATORS
from echo_pdk.eval.models import EvalAssertion, EvalDataset, EvalSuite
from echo_pdk.exceptions import EvalLoadError

__all__ = [
    "load_eval_file",
    "parse_eval_content",
    "load_dataset_file",
    "parse_dataset_content",
]


# =============================================================================
# YAML Parsing
# =============================================================================


def _parse_mapping(content: str, kind: str, source: str | None) -> dict[str, Any]:
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise EvalLoadError(f"YAML syntax error: {e}", source) from e
    if not isinstance(data, dict):
        raise EvalLoadError(f"Invalid {kind} file: expected YAML object", source)
    return data


def _validate(
    model: type[BaseModel], data: dict[str, Any], source: str | None
) -> Any:
    try:
        return model.model_validate(data)
    except ValidationError as e:
        details = []
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            details.append(f"{loc}: {error['msg']}")
        raise EvalLoadError(
            f"Schema validation failed: {'; '.join(details)}", source
        ) from e


def _read(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise EvalLoadError(f"Cannot read file: {e}", str(path)) from e


# =============================================================================
# Eval Suites
# =============================================================================


def _parse_assertion(
    raw: Any, index: int, test_name: str, source: str | None
) -> EvalAssertion:
    if not isinstance(raw, dict) or not raw:
        raise EvalLoadError(
            f'Empty assertion at index {index} in test "{test_name}"', source
        )
    operator, value = next(iter(raw.items()))
    if operator == "similar_to":
        raise EvalLoadError(
            f'Assertion operator "similar_to" in test "{test_name}" '
            "is not supported",
            source,
        )
    if operator not in EVAL_ASSERTION_OPERATORS:
        raise EvalLoadError(
            f'Unknown assertion operator "{operator}" in test "{test_name}"',
            source,
        )
    return EvalAssertion(operator=operator, value=value)


def _normalize_test(raw: Any, index: int, source: str | None) -> dict[str, Any]:
    if not isinstance(raw, dict) or not isinstance(raw.get("name"), str):
        raise EvalLoadError(
            f"Test at index {index} missing required field: name", source
        )
    name = raw["name"]
    test = dict(raw)
    for key in ("expect_render", "expect_llm"):
        assertions = raw.get(key)
        if assertions is None:
            continue
        if not isinstance(assertions, list):
            raise EvalLoadError(f'Test "{name}": {key} must be a list', source)
        test[key] = [
            _parse_assertion(a, i, name, source) for i, a in enumerate(assertions)
        ]
    if not test.get("expect_render") and not test.get("expect_llm"):
        raise EvalLoadError(
            f'Test "{name}" has no assertions (need expect_render or expect_llm)',
            source,
        )
    return test


def parse_eval_content(content: str, source: str | None = None) -> EvalSuite:
    """Parse ``.eval`` YAML into an EvalSuite.

    Args:
        content: YAML text.
        source: File name used in error messages.

    Raises:
        EvalLoadError: On invalid YAML, a missing ``suite`` or ``tests``
            field, a test without a name or assertions, or an unknown
            assertion operator.

    Example:
        >>> suite = parse_eval_content('''
        ... suite: greetings
        ... tests:
        ...   - name: says hello
        ...     given: {name: Alice}
        ...     expect_render:
        ...       - contains: Alice
        ... ''')
        >>> suite.tests[0].expect_render[0].operator
        'contains'
    """
    raw = _parse_mapping(content, ".eval", source)
    if not isinstance(raw.get("suite"), str):
        raise EvalLoadError("Missing required field: suite", source)
    tests = raw.get("tests")
    if not isinstance(tests, list) or not tests:
        raise EvalLoadError("Missing or empty required field: tests", source)

    data = dict(raw)
    if not isinstance(data.get("config"), dict):
        data.pop("config", None)
    data["tests"] = [_normalize_test(t, i, source) for i, t in enumerate(tests)]
    return _validate(EvalSuite, data, source)


def load_eval_file(path: Path) -> EvalSuite:
    """Read and parse an ``.eval`` file.

    Raises:
        EvalLoadError: If the file cannot be read or is malformed.
    """
    return parse_eval_content(_read(path), str(path))


# =============================================================================
# Datasets
# =============================================================================


def parse_dataset_content(content: str, source: str | None = None) -> EvalDataset:
    """Parse ``.dset`` YAML into an EvalDataset.

    Raises:
        EvalLoadError: On invalid YAML, a missing ``name``, an empty
            ``parameters`` list, or a parameter set without a name.
    """
    raw = _parse_mapping(content, ".dset", source)
    if not isinstance(raw.get("name"), str):
        raise EvalLoadError("Missing required field: name", source)
    parameters = raw.get("parameters")
    if not isinstance(parameters, list) or not parameters:
        raise EvalLoadError("Missing or empty required field: parameters", source)
    for i, params in enumerate(parameters):
        if not isinstance(params, dict) or not isinstance(params.get("name"), str):
            raise EvalLoadError(
                f"Parameter set at index {i} missing required field: name", source
            )

    data = dict(raw)
    if not isinstance(data.get("golden"), dict):
        data.pop("golden", None)
    return _validate(EvalDataset, data, source)


def load_dataset_file(path: Path) -> EvalDataset:
    """Read and parse a ``.dset`` file.

    Raises:
        EvalLoadError: If the file cannot be read or is malformed.
    """
    return parse_dataset_content(_read(path), str(path))
