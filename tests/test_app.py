"""
Tests for the command-line interface.
"""

import json
import sys

import pytest

from dealscout import __version__
from dealscout.app import main


@pytest.fixture
def run(tmp_path, monkeypatch, capsys):
    """Run the CLI against a temporary database and return stdout."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("DEALSCOUT_API_BASE", raising=False)
    monkeypatch.setenv("DEALSCOUT_DB_PATH", str(tmp_path / "cli.db"))

    def _run(*argv):
        monkeypatch.setattr(sys, "argv", ["dealscout", *argv])
        main()
        return capsys.readouterr().out

    return _run


class TestCli:
    """End-to-end CLI flows."""

    def test_version(self, run):
        assert run("--version").strip() == __version__

    def test_init_and_personas(self, run):
        assert "Active persona: early" in run("init")
        out = run("personas")
        assert "* early" in out
        assert "growth" in out

    def test_use(self, run):
        run("use", "pe")
        assert "* pe" in run("personas")

    def test_unknown_persona_exits(self, run):
        with pytest.raises(SystemExit) as exc:
            run("use", "nope")
        assert "Unknown persona" in str(exc.value)

    def test_like_from_file_and_weights(self, run, entity_file):
        out = run("like", str(entity_file), "--note", "great operator", "--scope", "test")
        assert "LIKE: Dana Reyes [new]" in out

        out = run("weights", "--scope", "test", "--reasons")
        assert "highlight:serial_founder" in out
        assert "great operator" in out

    def test_like_then_dislike_replaces(self, run):
        run("like", "e1", "--tag", "founder", "--scope", "test")
        out = run("dislike", "e1", "--tag", "founder", "--scope", "test")
        assert "[replaced like]" in out

    def test_invalid_prior_score(self, run):
        with pytest.raises(SystemExit) as exc:
            run("like", "e1", "--prior-score", "140")
        assert "prior_score" in str(exc.value)

    def test_score_json(self, run, tmp_path, entity_file, raw_person, raw_company):
        path = tmp_path / "batch.json"
        path.write_text(json.dumps([raw_company, raw_person]))
        run("like", str(entity_file), "--scope", "test")

        ranked = json.loads(run("score", "--input", str(path), "--scope", "test", "--json"))
        assert [r["id"] for r in ranked] == ["per_001", "com_042"]
        assert all(0 <= r["score"] <= 100 for r in ranked)

    def test_stats_and_outbox(self, run):
        run("like", "e1", "--tag", "founder")
        run("view", "c1", "--type", "company")
        assert "Outbox: 2 pending, 0 parked" in run("stats")
        assert "viewed company/c1" in run("outbox")

    def test_sync_without_api_base(self, run):
        with pytest.raises(SystemExit) as exc:
            run("sync")
        assert "DEALSCOUT_API_BASE" in str(exc.value)

    def test_export(self, run, tmp_path):
        run("like", "e1", "--tag", "founder", "--note", "strong")
        run("compare", "e1", "e2", "--reason", "better market")
        out_path = tmp_path / "out" / "early.json"
        dpo_path = tmp_path / "out" / "early.jsonl"

        out = run("export", "--output", str(out_path), "--dpo", str(dpo_path))

        assert "Saved 2 DPO lines" in out
        doc = json.loads(out_path.read_text(encoding="utf-8"))
        assert doc["metadata"]["feedback_count"] == 1
        assert doc["metadata"]["pairs_count"] == 1
        assert len(dpo_path.read_text(encoding="utf-8").splitlines()) == 2

    def test_replay(self, run):
        run("like", "e1", "--tag", "founder")
        assert "Replayed 1 feedback records for early" in run("replay")
