"""
Disease Knowledge Base
======================
Static descriptive records keyed by class name, plus the startup check
that the model's class list, the configured class list and the knowledge
base all agree.

Records are validated once, when the JSON file is loaded; lookups never
deal with missing keys.
"""
from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError


logger = logging.getLogger("leaf_inference.knowledge")


class DiseaseRecord(BaseModel):
    """Closed record describing one class."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    disease: str
    status: str = Field(..., pattern="^(healthy|diseased|unknown)$")
    description: str
    treatment: list[str]
    scientific_name: str | None = None
    symptoms: list[str] = Field(default_factory=list)
    prevention: list[str] = Field(default_factory=list)
    maintenance: list[str] = Field(default_factory=list)
    care_instructions: list[str] = Field(default_factory=list)
    biological_control: list[str] | None = None
    fungicides: list[str] | None = None
    resistant_varieties: list[str] | None = None
    vector: str | None = None
    transmission: str | None = None
    emergency: str | None = None


UNKNOWN_DISEASE = DiseaseRecord(
    disease="Unknown Disease",
    status="unknown",
    description="No information available.",
    treatment=["Consult an expert"],
)


@dataclass
class SyncReport:
    """Result of :func:`validate_class_sync`."""

    is_sync: bool
    differences: list[str] = field(default_factory=list)


def validate_class_sync(
    model_classes: Sequence[str],
    config_classes: Sequence[str],
    knowledge: DiseaseKnowledgeBase | None = None,
) -> SyncReport:
    """
    Compare the model's class list with the configured one.

    Reports a length mismatch, every index whose names differ, and (when a
    knowledge base is given) every model class without a record.
    """
    differences: list[str] = []
    if len(model_classes) != len(config_classes):
        differences.append(
            f"Length mismatch: model has {len(model_classes)}, config has {len(config_classes)}"
        )
    for index, model_class in enumerate(model_classes):
        config_class = config_classes[index] if index < len(config_classes) else None
        if model_class != config_class:
            differences.append(f'Index {index}: model="{model_class}" vs config="{config_class}"')
    if knowledge is not None:
        for model_class in model_classes:
            if knowledge.get(model_class) is None:
                differences.append(f"Missing disease data for model class: {model_class}")
    return SyncReport(is_sync=not differences, differences=differences)


class DiseaseKnowledgeBase:
    """Class-name keyed store of :class:`DiseaseRecord`."""

    def __init__(
        self,
        records: dict[str, DiseaseRecord],
        class_names: Sequence[str],
        healthy_class: str = "Healthy",
    ) -> None:
        self._records = dict(records)
        self.class_names = tuple(class_names)
        self.healthy_class = healthy_class

    @classmethod
    def from_file(
        cls,
        path: Path,
        class_names: Sequence[str],
        healthy_class: str = "Healthy",
    ) -> DiseaseKnowledgeBase:
        """
        Load and validate every record in ``path``.

        Raises
        ------
        ValueError
            If the file is not valid JSON or a record does not match
            :class:`DiseaseRecord`.
        """
        with open(path, encoding="utf-8") as f:
            raw = json.load(f)
        records: dict[str, DiseaseRecord] = {}
        for class_name, payload in raw.items():
            try:
                records[class_name] = DiseaseRecord.model_validate(payload)
            except ValidationError as exc:
                raise ValueError(f"Invalid disease record for {class_name!r}: {exc}") from exc
        logger.info("Loaded %d disease records from %s", len(records), Path(path).name)
        return cls(records, class_names, healthy_class)

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, class_name: object) -> bool:
        return class_name in self._records

    def get(self, class_name: str) -> DiseaseRecord | None:
        return self._records.get(class_name)

    def lookup(self, class_name: str) -> DiseaseRecord:
        """Record for ``class_name``, or the "Unknown Disease" record."""
        record = self._records.get(class_name)
        if record is None:
            logger.warning("Disease info not found for class: %s", class_name)
            return UNKNOWN_DISEASE
        return record

    def keys(self) -> list[str]:
        return list(self._records)

    def by_status(self, status: str) -> list[str]:
        return [name for name, record in self._records.items() if record.status == status]

    def is_healthy(self, class_name: str) -> bool:
        return class_name == self.healthy_class

    def class_index(self, class_name: str) -> int:
        """Position of ``class_name`` in the class list, ``-1`` if absent."""
        try:
            return self.class_names.index(class_name)
        except ValueError:
            logger.warning("Class not found in class list: %s", class_name)
            return -1
