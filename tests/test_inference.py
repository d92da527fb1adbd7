"""Tests for checkpoint inference and output evaluation."""

import json
from pathlib import Path

import lightning as L
import pytest
import torch

from cnn_training.errors import CheckpointLoadError, DecodeError
from cnn_training.inference import CheckpointPredictor, evaluate_outputs, load_expectations
from cnn_training.models import ClassifierArchitecture, ImageModel

from conftest import DatasetFactory, sample_id


class TestEvaluateOutputs:
    def test_thresholds_scores(self) -> None:
        evaluation = evaluate_outputs([0.9, 0.2, 0.5])
        assert [r.actual for r in evaluation.results] == [1, 0, 1]
        assert [r.category for r in evaluation.results] == [1, 2, 3]
        assert evaluation.results[0].confidence == pytest.approx(90.0)
        assert evaluation.overall is None

    def test_compares_with_expectations(self) -> None:
        evaluation = evaluate_outputs([0.9, 0.2], expects=[1, 1])
        assert [r.passed for r in evaluation.results] == [True, False]
        assert evaluation.overall is False

    def test_all_passed(self) -> None:
        assert evaluate_outputs([0.1, 0.7], expects=[0, 1]).overall is True

    def test_custom_threshold(self) -> None:
        evaluation = evaluate_outputs([0.6], threshold=0.75)
        assert evaluation.results[0].actual == 0

    def test_length_mismatch(self) -> None:
        with pytest.raises(ValueError, match="expected values"):
            evaluate_outputs([0.1, 0.2], expects=[1])


class TestLoadExpectations:
    def test_flat_expects(self, tmp_path: Path) -> None:
        path = tmp_path / "cases.json"
        path.write_text(json.dumps([{"name": "a.jpg", "expects": [1, 0]}]))
        assert load_expectations(path) == {"a.jpg": [1, 0]}

    def test_keyed_expects(self, tmp_path: Path) -> None:
        path = tmp_path / "cases.json"
        path.write_text(
            json.dumps([{"name": "a.jpg", "expects": {"fontCatOutput": [0, 1], "other": [1]}}])
        )
        assert load_expectations(path, key="fontCatOutput") == {"a.jpg": [0, 1]}

    def test_not_an_array(self, tmp_path: Path) -> None:
        path = tmp_path / "cases.json"
        path.write_text(json.dumps({"name": "a.jpg"}))
        with pytest.raises(ValueError, match="JSON array"):
            load_expectations(path)

    def test_missing_key(self, tmp_path: Path) -> None:
        path = tmp_path / "cases.json"
        path.write_text(json.dumps([{"name": "a.jpg", "expects": {"other": [1]}}]))
        with pytest.raises(ValueError, match="Invalid expectations entry"):
            load_expectations(path, key="fontCatOutput")


@pytest.fixture()
def saved_classifier(tmp_path: Path, cpu_fabric: L.Fabric) -> Path:
    path = tmp_path / "model"
    path.mkdir()
    ImageModel(ClassifierArchitecture(num_classes=3), (16, 16, 1), fabric=cpu_fabric).save(path)
    return path


class TestCheckpointPredictor:
    def test_predicts_every_image_in_order(
        self, saved_classifier: Path, make_dataset: DatasetFactory, cpu_fabric: L.Fabric
    ) -> None:
        image_dir, _ = make_dataset(5)
        predictor = CheckpointPredictor(saved_classifier, fabric=cpu_fabric)
        results = list(predictor.predict_directory(image_dir, batch_size=2))
        assert [p.stem for p, _ in results] == [sample_id(i) for i in range(5)]
        for _, scores in results:
            assert len(scores) == 3
            assert sum(scores) == pytest.approx(1.0, abs=1e-5)

    def test_batch_size_does_not_change_outputs(
        self, saved_classifier: Path, make_dataset: DatasetFactory, cpu_fabric: L.Fabric
    ) -> None:
        image_dir, _ = make_dataset(4)
        predictor = CheckpointPredictor(saved_classifier, fabric=cpu_fabric)
        one = [s for _, s in predictor.predict_directory(image_dir, batch_size=1)]
        four = [s for _, s in predictor.predict_directory(image_dir, batch_size=4)]
        torch.testing.assert_close(torch.tensor(one), torch.tensor(four))

    def test_corrupt_image_names_the_file(
        self, saved_classifier: Path, make_dataset: DatasetFactory, cpu_fabric: L.Fabric
    ) -> None:
        image_dir, _ = make_dataset(2, corrupt_images=[sample_id(1)])
        predictor = CheckpointPredictor(saved_classifier, fabric=cpu_fabric)
        with pytest.raises(DecodeError) as exc_info:
            list(predictor.predict_directory(image_dir, batch_size=1))
        assert exc_info.value.sample_id == f"{sample_id(1)}.jpg"

    def test_unreadable_file_names_the_file(
        self, saved_classifier: Path, tmp_path: Path, cpu_fabric: L.Fabric
    ) -> None:
        predictor = CheckpointPredictor(saved_classifier, fabric=cpu_fabric)
        with pytest.raises(DecodeError, match="Cannot read") as exc_info:
            predictor.predict_files([tmp_path / "missing.jpg"])
        assert exc_info.value.sample_id == "missing.jpg"

    def test_missing_model(self, tmp_path: Path, cpu_fabric: L.Fabric) -> None:
        with pytest.raises(CheckpointLoadError):
            CheckpointPredictor(tmp_path / "nope", fabric=cpu_fabric)
