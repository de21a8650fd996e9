import io
import json
import zipfile

from scripts.build_dataset import main


def _project(root, wav_blob, iso, takes=True):
    root.mkdir(parents=True)
    sessions = []
    if takes:
        (root / "take.wav").write_bytes(wav_blob(1.0, 8_000))
        sessions.append(
            {
                "id": "S1",
                "takes": [{"idx": 0, "started_at": iso(0), "ended_at": iso(1_000), "audio": "take.wav"}],
            }
        )
    manifest = {"project_name": "Cli", "user_code": "CODE", "sentences": [{"text": "a"}, {"text": "b"}], "sessions": sessions}
    (root / "project.json").write_text(json.dumps(manifest), encoding="utf-8")
    (root / "log.jsonl").write_text(
        json.dumps({"ts": iso(400), "sessionId": "S1", "action": "nav_next", "index": 0}), encoding="utf-8"
    )
    return root


def test_cli_writes_archive(tmp_path, wav_blob, iso, capsys):
    project = _project(tmp_path / "proj", wav_blob, iso)
    output = tmp_path / "out" / "dataset.zip"

    code = main([str(project), "--output", str(output), "--sample-rate", "16000", "--user-code", "ZZ"])

    assert code == 0
    out = capsys.readouterr().out
    assert str(output) in out
    assert "2/2 sentence(s) recorded" in out
    with zipfile.ZipFile(io.BytesIO(output.read_bytes())) as archive:
        metadata = archive.read("metadata.csv").decode("utf-8").split("\n")
    assert len(metadata) == 3
    assert metadata[1].split(",")[5] == "ZZ"
    assert metadata[2].split(",")[0] == "audio/clips/0002_sent0002.wav"


def test_cli_reports_missing_recordings(tmp_path, wav_blob, iso, capsys):
    project = _project(tmp_path / "proj", wav_blob, iso, takes=False)

    code = main([str(project), "--output", str(tmp_path / "never.zip")])

    assert code == 1
    assert "No recordings yet" in capsys.readouterr().err
    assert not (tmp_path / "never.zip").exists()


def test_cli_exports_log_next_to_archive(tmp_path, wav_blob, iso):
    project = _project(tmp_path / "proj", wav_blob, iso)
    output = tmp_path / "out" / "dataset.zip"

    assert main([str(project), "--output", str(output), "--export-log"]) == 0

    exported = tmp_path / "out" / "Cli_CODE_log.jsonl"
    assert json.loads(exported.read_text(encoding="utf-8"))["action"] == "nav_next"
