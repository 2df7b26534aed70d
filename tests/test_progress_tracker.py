import json

from artifact_archive.progress_tracker import ProgressEntry, ProgressTracker, Status


def _entries(path):
    with open(path, encoding="utf-8") as f:
        return [json.loads(line) for line in f]


def test_json_path_becomes_jsonl(tmp_path):
    tracker = ProgressTracker(str(tmp_path / "progress.json"))
    assert tracker.log_file_path.endswith("progress.jsonl")


def test_compressing_update(tmp_path):
    tracker = ProgressTracker(str(tmp_path / "progress.jsonl"))
    assert tracker.update_progress({
        "phase": "compressing", "current": 3, "total": 4, "current_file": "main.js",
    })

    (entry,) = _entries(tracker.log_file_path)
    assert entry["phase"] == "compressing"
    assert entry["percentage"] == 75
    assert entry["details"] == "main.js"
    assert entry["status"] == Status.IN_PROGRESS.value


def test_extras_become_details(tmp_path):
    tracker = ProgressTracker(str(tmp_path / "progress.jsonl"))
    tracker.update_progress({"phase": "scanning", "files_found": 8, "status": "completed"})

    (entry,) = _entries(tracker.log_file_path)
    assert entry["details"] == "files_found=8"
    assert entry["status"] == Status.COMPLETED.value
    assert entry["percentage"] is None


def test_unknown_status_defaults_to_in_progress(tmp_path):
    tracker = ProgressTracker(str(tmp_path / "progress.jsonl"))
    tracker.update_progress({"phase": "archiving", "status": "exploded"})
    assert _entries(tracker.log_file_path)[0]["status"] == Status.IN_PROGRESS.value


def test_unwritable_log_returns_false(tmp_path):
    tracker = ProgressTracker(str(tmp_path / "progress.jsonl"))
    tracker.log_file_path = str(tmp_path)
    assert not tracker.log_entry(ProgressEntry(phase="x", status=Status.FAILED))


def test_tracker_as_build_callback(tmp_path, source_tree, builder):
    tracker = ProgressTracker(str(tmp_path / "logs" / "progress.jsonl"))
    builder.build(str(source_tree), str(tmp_path / "out"), on_progress=tracker.update_progress)

    phases = [entry["phase"] for entry in _entries(tracker.log_file_path)]
    assert phases[0] == "scanning"
    assert phases[-1] == "validating"
    assert phases.count("compressing") == 8
