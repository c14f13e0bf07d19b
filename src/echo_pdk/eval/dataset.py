"""Datasets stored under a prompt's ``eval/datasets/`` directory."""

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import yaml

from echo_pdk.constants import DATASET_EXTENSION
from echo_pdk.eval.loader import load_dataset_file
from echo_pdk.eval.models import EvalDataset, EvalGolden
from echo_pdk.exceptions import EvalLoadError
from echo_pdk.logging import get_logger
from echo_pdk.providers.types import CompletionResponse

__all__ = ["DatasetManager"]

logger = get_logger(__name__)


class DatasetManager:
    """Loads, caches and updates the datasets of one prompt directory.

    Args:
        prompt_dir: Directory holding the target template and ``eval/``.

    Example:
        ```python
        datasets = DatasetManager(Path("prompts/greeting"))
        variables = datasets.get_params("users", "alice")
        ```
    """

    def __init__(self, prompt_dir: Path) -> None:
        self.prompt_dir = prompt_dir
        self._cache: dict[str, EvalDataset] = {}

    def path_for(self, name: str) -> Path:
        return self.prompt_dir / "eval" / "datasets" / f"{name}{DATASET_EXTENSION}"

    def load(self, name: str) -> EvalDataset:
        """Load ``eval/datasets/{name}.dset``, once per manager.

        Raises:
            EvalLoadError: If the file is missing or malformed.
        """
        cached = self._cache.get(name)
        if cached is not None:
            return cached
        dataset = load_dataset_file(self.path_for(name))
        self._cache[name] = dataset
        return dataset

    def get_params(self, dataset_name: str, params_name: str) -> dict[str, Any]:
        """Variables of a named parameter set (every key except ``name``).

        Raises:
            EvalLoadError: If the dataset or the parameter set is missing.
        """
        dataset = self.load(dataset_name)
        for params in dataset.parameters:
            if params.get("name") == params_name:
                return {k: v for k, v in params.items() if k != "name"}
        available = ", ".join(str(p.get("name")) for p in dataset.parameters)
        raise EvalLoadError(
            f'Parameter set "{params_name}" not found in dataset '
            f'"{dataset_name}". Available: {available}'
        )

    def get_golden(self, dataset_name: str) -> str | None:
        dataset = self.load(dataset_name)
        return dataset.golden.response if dataset.golden else None

    def record_golden(self, dataset_name: str, response: CompletionResponse) -> None:
        """Store ``response`` as the dataset's golden and write the file.

        A dataset that does not exist yet is created with no parameter sets.
        """
        try:
            dataset = self.load(dataset_name)
        except EvalLoadError:
            dataset = EvalDataset(name=dataset_name)

        golden = EvalGolden(
            response=response.text,
            model=response.model,
            recorded_at=datetime.now(UTC).isoformat(),
            metadata={
                "tokens": response.usage.total,
                "latency_ms": response.latency_ms,
            },
        )
        dataset = dataset.model_copy(update={"golden": golden})
        self.save(dataset_name, dataset)
        self._cache[dataset_name] = dataset
        logger.info("golden_recorded", dataset=dataset_name, model=response.model)

    def save(self, name: str, dataset: EvalDataset) -> None:
        path = self.path_for(name)
        path.parent.mkdir(parents=True, exist_ok=True)
        content = yaml.safe_dump(
            dataset.model_dump(exclude_none=True),
            sort_keys=False,
            allow_unicode=True,
            width=120,
        )
        path.write_text(content, encoding="utf-8")
