"""
Tests for the roadmap-sync command line.

Acceptance Criteria:
- Reconciles the file in place and prints a summary
- --check never writes and exits 1 when the roadmap is out of date
- --dry-run never writes
- --json prints the report as JSON
- Fatal errors print the reason, leave the file byte-identical and map to
  distinct exit codes

Edge Cases:
- Missing or undecodable file → I/O exit code
- --config names the settings file itself; invalid settings fall back to defaults
- CRLF file is written back with CRLF
"""

import json
import logging

import pytest

from roadmap_sync.cli import (
    EXIT_CYCLE,
    EXIT_DUPLICATE_ID,
    EXIT_INTEGRITY_ERROR,
    EXIT_IO_ERROR,
    EXIT_NEEDS_UPDATE,
    EXIT_OK,
    EXIT_PARSE_ERROR,
    format_summary,
    get_exit_code,
    main,
)
from roadmap_sync.maintainer import reconcile
from roadmap_sync.task_graph import CycleError, DuplicateIdError, IntegrityError, ParseError


STALE = """## Milestone 1: Web App

### Blocked

- [ ] 1WA.2 Build login form (depends on 1WA.1)

### To-Do

### In-Progress

### Done

- [x] 1WA.1 Set up project
"""

CURRENT = """## Milestone 1: Web App

### Blocked

### To-Do

- [ ] 1WA.2 Build login form (depends on 1WA.1)

### In-Progress

### Done

- [x] 1WA.1 Set up project
"""

CYCLIC = """## Milestone 1: Web App

### Blocked

### To-Do

- [ ] 1WA.1 Setup (depends on 1WA.2)
- [ ] 1WA.2 Login form (depends on 1WA.1)

### In-Progress

### Done
"""


@pytest.fixture(autouse=True)
def reset_logging():
    yield
    logger = logging.getLogger("roadmap_sync")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


@pytest.fixture
def roadmap(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    path = tmp_path / "ROADMAP.md"
    path.write_text(STALE)
    return path


class TestMain:
    """In-place reconciliation."""

    def test_rewrites_file(self, roadmap, capsys):
        assert main([str(roadmap)]) == EXIT_OK
        assert roadmap.read_text() == CURRENT
        out = capsys.readouterr().out
        assert "MOVES:" in out
        assert "1WA.2: Blocked -> To-Do" in out

    def test_second_run_reports_up_to_date(self, roadmap, capsys):
        main([str(roadmap)])
        capsys.readouterr()
        assert main([str(roadmap)]) == EXIT_OK
        assert "Roadmap is up to date." in capsys.readouterr().out

    def test_check_does_not_write(self, roadmap):
        assert main([str(roadmap), "--check"]) == EXIT_NEEDS_UPDATE
        assert roadmap.read_text() == STALE

    def test_check_passes_when_current(self, roadmap):
        roadmap.write_text(CURRENT)
        assert main([str(roadmap), "--check"]) == EXIT_OK

    def test_dry_run_does_not_write(self, roadmap):
        assert main([str(roadmap), "--dry-run"]) == EXIT_OK
        assert roadmap.read_text() == STALE

    def test_json_report(self, roadmap, capsys):
        main([str(roadmap), "--json", "--dry-run"])
        report = json.loads(capsys.readouterr().out)
        assert report["changed"] is True
        assert report["moves"] == [
            {"task_id": "1WA.2", "from_section": "Blocked", "to_section": "To-Do"}
        ]
        assert report["proposed_promotions"] == ["1WA.2"]

    def test_crlf_written_back(self, roadmap):
        roadmap.write_bytes(STALE.replace("\n", "\r\n").encode())
        main([str(roadmap)])
        assert roadmap.read_bytes() == CURRENT.replace("\n", "\r\n").encode()

    def test_log_file(self, roadmap, tmp_path):
        log_file = tmp_path / "logs" / "sync.log"
        main([str(roadmap), "--log-file", str(log_file)])
        assert "Moving 1WA.2" in log_file.read_text()


class TestFailures:
    """Fatal errors leave the file alone."""

    def test_cycle(self, roadmap, capsys):
        roadmap.write_text(CYCLIC)
        assert main([str(roadmap)]) == EXIT_CYCLE
        assert roadmap.read_text() == CYCLIC
        err = capsys.readouterr().err
        assert "1WA.1" in err and "1WA.2" in err
        assert "was not modified" in err

    def test_parse_error(self, roadmap):
        broken = STALE.replace("1WA.2 Build", "WA.2 Build")
        roadmap.write_text(broken)
        assert main([str(roadmap)]) == EXIT_PARSE_ERROR
        assert roadmap.read_text() == broken

    def test_missing_file(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        assert main([str(tmp_path / "nope.md")]) == EXIT_IO_ERROR

    def test_undecodable_file(self, roadmap, capsys):
        roadmap.write_bytes(b"\xff\xfe bad\n")
        assert main([str(roadmap), "--check"]) == EXIT_IO_ERROR
        assert "cannot read" in capsys.readouterr().err
        assert roadmap.read_bytes() == b"\xff\xfe bad\n"


class TestConfig:
    """Settings come from --config or ./pyproject.toml."""

    def test_config_file_is_read(self, roadmap, tmp_path):
        settings = tmp_path / "cfg" / "roadmap.toml"
        settings.parent.mkdir()
        settings.write_text("aggregate_required = true\n")
        assert main([str(roadmap), "--config", str(settings)]) == EXIT_PARSE_ERROR
        assert roadmap.read_text() == STALE

    def test_missing_config_file(self, roadmap, tmp_path):
        assert main([str(roadmap), "--config", str(tmp_path / "nope.toml")]) == EXIT_IO_ERROR
        assert roadmap.read_text() == STALE

    def test_invalid_setting_uses_defaults(self, roadmap, tmp_path):
        (tmp_path / "pyproject.toml").write_text('[tool.roadmap-sync]\ndiagram_direction = "XX"\n')
        assert main([str(roadmap)]) == EXIT_OK
        assert roadmap.read_text() == CURRENT


class TestExitCodes:
    def test_mapping(self):
        assert get_exit_code(ParseError("bad")) == EXIT_PARSE_ERROR
        assert get_exit_code(CycleError(["1WA.1", "1WA.2"])) == EXIT_CYCLE
        assert get_exit_code(DuplicateIdError("1WA.1", [3, 9])) == EXIT_DUPLICATE_ID
        assert get_exit_code(IntegrityError(["oops"])) == EXIT_INTEGRITY_ERROR


class TestSummary:
    def test_promotions_listed(self):
        summary = format_summary(reconcile(STALE))
        assert "Blocked: 0 | To-Do: 1 | In-Progress: 0 | Done: 1" in summary
        assert "READY TO START" in summary
        assert "1WA.2" in summary
