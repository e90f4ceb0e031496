# tests/test_sample_data.py — Demo dataset generator
import json
import importlib.util
from datetime import datetime, timezone
from pathlib import Path

import pytest

SCRIPT = Path(__file__).resolve().parents[2] / "scripts" / "generate-sample-data.py"


@pytest.fixture(scope="module")
def sample_module():
    spec = importlib.util.spec_from_file_location("generate_sample_data", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.fixture
def dataset(sample_module):
    generator = sample_module.SampleDataGenerator(seed=7, now=datetime(2026, 6, 1, tzinfo=timezone.utc))
    return generator.generate_all({
        "admins": 1, "managers": 2, "developers": 4, "projects": 3, "tasks_per_project": 6,
    })


class TestSampleData:
    def test_counts_match_rows(self, dataset):
        for name, count in dataset["counts"].items():
            assert len(dataset["data"][name]) == count
        assert dataset["counts"]["users"] == 7
        assert dataset["counts"]["tasks"] == 18

    def test_same_seed_same_data(self, sample_module, dataset):
        again = sample_module.SampleDataGenerator(seed=7, now=datetime(2026, 6, 1, tzinfo=timezone.utc))
        assert again.generate_all({
            "admins": 1, "managers": 2, "developers": 4, "projects": 3, "tasks_per_project": 6,
        }) == dataset

    def test_references_are_consistent(self, dataset):
        data = dataset["data"]
        users = {u["id"]: u for u in data["users"]}
        tasks = {t["id"]: t for t in data["tasks"]}

        for p in data["projects"]:
            assert users[p["owner_manager_id"]]["role"] == "MANAGER"
        for a in data["task_assignments"]:
            assert users[a["developer_id"]]["role"] == "DEVELOPER"
            assert tasks[a["task_id"]]["status"] != "NEW"
        for w in data["work_logs"]:
            assert tasks[w["task_id"]]["started_at"] is not None
            assert 0 < w["hours"] <= 24
        for c in data["comments"]:
            assert c["user_id"] in users

    def test_task_lifecycle_fields(self, dataset):
        for t in dataset["data"]["tasks"]:
            assert t["end_date"] >= t["start_date"]
            if t["status"] == "COMPLETED":
                assert t["completed_at"] is not None
                assert t["progress_percentage"] == 100
            else:
                assert t["completed_at"] is None
            if t["status"] in ("NEW", "ASSIGNED"):
                assert t["started_at"] is None

    def test_cli_writes_json(self, sample_module, tmp_path):
        output = tmp_path / "sample.json"
        sample_module.main(["--developers", "2", "--projects", "1", "--tasks", "3", "--output", str(output)])
        written = json.loads(output.read_text())
        assert written["counts"]["projects"] == 1
        assert written["counts"]["tasks"] == 3

    def test_cli_requires_a_manager(self, sample_module):
        with pytest.raises(SystemExit):
            sample_module.main(["--managers", "0"])
