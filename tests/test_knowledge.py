# ============================================================================
# Leaf Inference Server - Knowledge Base Tests
# ============================================================================
# Purpose: Record validation, lookups and the class sync check
# ============================================================================

import json

import pytest

from leaf_inference import config
from leaf_inference.knowledge import (
    UNKNOWN_DISEASE,
    DiseaseKnowledgeBase,
    DiseaseRecord,
    validate_class_sync,
)


@pytest.fixture(scope="module")
def knowledge():
    from leaf_inference.config import get_class_names
    return DiseaseKnowledgeBase.from_file(config.KNOWLEDGE_PATH, get_class_names())


class TestBundledData:
    """The shipped diseases.json."""

    def test_every_class_has_a_record(self, knowledge, class_names):
        report = validate_class_sync(class_names, class_names, knowledge)
        assert report.is_sync, report.differences
        assert len(knowledge) == len(class_names)

    def test_statuses(self, knowledge):
        assert knowledge.by_status("healthy") == ["Healthy"]
        assert len(knowledge.by_status("diseased")) == 9

    def test_optional_slots_default(self, knowledge):
        healthy = knowledge.lookup("Healthy")
        assert healthy.scientific_name is None
        assert healthy.symptoms == []
        assert healthy.maintenance


class TestLookup:
    """Lookups by class name."""

    def test_lookup_known(self, knowledge):
        record = knowledge.lookup("Late_blight")
        assert record.disease == "Late Blight"
        assert record.scientific_name == "Phytophthora infestans"

    def test_lookup_unknown_returns_placeholder(self, knowledge):
        assert knowledge.lookup("Purple_spot") is UNKNOWN_DISEASE
        assert knowledge.get("Purple_spot") is None

    def test_class_index(self, knowledge):
        assert knowledge.class_index("Healthy") == 2
        assert knowledge.class_index("Purple_spot") == -1

    def test_is_healthy(self, knowledge):
        assert knowledge.is_healthy("Healthy") is True
        assert knowledge.is_healthy("Leaf_Mold") is False


class TestRecordValidation:
    """Records are checked once, at load time."""

    def test_unknown_field_rejected(self, tmp_path):
        path = tmp_path / "diseases.json"
        path.write_text(json.dumps({
            "Healthy": {
                "disease": "Healthy",
                "status": "healthy",
                "description": "ok",
                "treatment": [],
                "colour": "green",
            }
        }))
        with pytest.raises(ValueError, match="Healthy"):
            DiseaseKnowledgeBase.from_file(path, ["Healthy"])

    def test_missing_required_field_rejected(self, tmp_path):
        path = tmp_path / "diseases.json"
        path.write_text(json.dumps({"Healthy": {"disease": "Healthy", "status": "healthy"}}))
        with pytest.raises(ValueError):
            DiseaseKnowledgeBase.from_file(path, ["Healthy"])

    def test_bad_status_rejected(self):
        with pytest.raises(ValueError):
            DiseaseRecord(disease="x", status="sick", description="x", treatment=[])


class TestClassSync:
    """Model vs config class list comparison."""

    def test_in_sync(self):
        report = validate_class_sync(["a", "b"], ["a", "b"])
        assert report.is_sync
        assert report.differences == []

    def test_length_mismatch(self):
        report = validate_class_sync(["a", "b", "c"], ["a", "b"])
        assert not report.is_sync
        assert report.differences[0] == "Length mismatch: model has 3, config has 2"

    def test_index_mismatch(self):
        report = validate_class_sync(["a", "c"], ["a", "b"])
        assert report.differences == ['Index 1: model="c" vs config="b"']

    def test_missing_disease_data(self, knowledge):
        report = validate_class_sync(["Healthy", "Purple_spot"], ["Healthy", "Purple_spot"], knowledge)
        assert report.differences == ["Missing disease data for model class: Purple_spot"]
