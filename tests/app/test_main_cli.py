from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

import pytest

from correlator.domain.model import CaseStatus
from correlator.ui import cli as cli_module

if TYPE_CHECKING:
    from pathlib import Path

    from correlator.app import CorrelationService


@pytest.fixture
def cli(monkeypatch: pytest.MonkeyPatch, service: CorrelationService) -> CorrelationService:
    def fake_build_service(**_: object) -> CorrelationService:
        return service

    monkeypatch.setattr(cli_module, "build_service", fake_build_service)
    return service


def _run(capsys: pytest.CaptureFixture[str], *argv: str) -> Any:
    cli_module.main(list(argv))
    return json.loads(capsys.readouterr().out)


def _run_lines(capsys: pytest.CaptureFixture[str], *argv: str) -> list[Any]:
    cli_module.main(list(argv))
    return [json.loads(line) for line in capsys.readouterr().out.splitlines() if line]


def _write_json(path: Path, payload: object) -> Path:
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def _write_pairs(path: Path) -> Path:
    line = {
        "source": {
            "ref": "hr:alice",
            "attributes": {"email": "alice@example.com", "phone": "111-222-3333"},
        },
        "target": {
            "ref": "idn:alice",
            "attributes": {"email": "ALICE@example.com", "phone": "999-888-7777"},
        },
    }
    path.write_text(json.dumps(line) + "\n\n", encoding="utf-8")
    return path


def test_rule_create_and_show(
    cli: CorrelationService, capsys: pytest.CaptureFixture[str], tmp_path: Path
) -> None:
    rule_file = _write_json(
        tmp_path / "rule.json",
        {
            "name": "email",
            "source_attribute": "email",
            "target_attribute": "email",
            "match_type": "exact",
            "threshold": 1.0,
            "weight": 1.0,
        },
    )

    created = _run(capsys, "rules", "create", "--scope", "hr", "--file", str(rule_file))
    shown = _run(capsys, "rules", "show", created["id"])

    assert created["scope"] == "connector:hr"
    assert shown == created
    assert [rule.name for rule in cli.list_rules()] == ["email"]


def test_invalid_rule_exits_with_field_errors(
    cli: CorrelationService, capsys: pytest.CaptureFixture[str], tmp_path: Path
) -> None:
    rule_file = _write_json(tmp_path / "rule.json", {"match_type": "exact", "weight": 1})

    with pytest.raises(SystemExit) as excinfo:
        cli_module.main(["rules", "create", "--scope", "hr", "--file", str(rule_file)])

    assert excinfo.value.code == 2
    error = json.loads(capsys.readouterr().err.strip().splitlines()[-1])
    assert error["error"] == "RuleValidationError"
    assert {item["field"] for item in error["field_errors"]} >= {"name", "threshold"}
    assert cli.list_rules() == []


def test_invalid_uuid_exits_with_code_two(cli: CorrelationService) -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli_module.main(["cases", "show", "not-a-uuid"])

    assert excinfo.value.code == 2


def test_unknown_rule_exits_with_code_one(cli: CorrelationService) -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli_module.main(["rules", "delete", "00000000-0000-0000-0000-000000000000"])

    assert excinfo.value.code == 1


def test_correlate_and_review_from_the_command_line(
    cli: CorrelationService, capsys: pytest.CaptureFixture[str], tmp_path: Path
) -> None:
    for name, attribute, extra in (
        ("email", "email", {"match_type": "exact", "threshold": 1.0}),
        ("phone", "phone", {"match_type": "fuzzy", "algorithm": "jaro_winkler", "threshold": 0.8}),
    ):
        rule_file = _write_json(
            tmp_path / f"{name}.json",
            {"name": name, "source_attribute": attribute, "target_attribute": attribute}
            | {"weight": 1.0}
            | extra,
        )
        _run(capsys, "rules", "create", "--scope", "hr", "--file", str(rule_file))
    _run(
        capsys,
        *("thresholds", "set", "--scope", "hr"),
        *("--auto-confirm", "0.9", "--manual-review", "0.3"),
    )
    pairs = _write_pairs(tmp_path / "pairs.jsonl")

    report = _run(capsys, "correlate", "--scope", "hr", "--pairs", str(pairs))
    simulation = _run(
        capsys, "simulate", "--scope", "hr", "--pairs", str(pairs), "--auto-confirm", "0.4"
    )
    page = _run(capsys, "cases", "list", "--status", "pending")
    case = page["items"][0]
    confirmed = _run(
        capsys,
        "cases",
        "confirm",
        case["id"],
        "--candidate-id",
        case["candidates"][0]["id"],
        "--actor",
        "reviewer-1",
    )
    stats = _run(capsys, "stats", "--scope", "hr")

    assert report["distribution"]["manual_review"] == 1
    assert report["cases_opened"] == 1
    assert len(simulation["changes"]) == 1
    assert page["total"] == 1
    assert confirmed["status"] == CaseStatus.CONFIRMED
    assert confirmed["resolved_by"] == "reviewer-1"
    assert stats["review_queue_depth"] == 0
    job = _run(capsys, "job", report["job_id"])
    assert job["status"] == "completed"

    trends = _run(capsys, "stats", "--scope", "hr", "--trends")
    (day,) = trends["daily_trends"]
    assert (day["total_evaluated"], day["manual_review"]) == (1, 1)
    (event,) = _run_lines(capsys, "audit", "--actor", "reviewer-1", "--outcome", "success")
    assert event["event_type"] == "manual_confirm"
    assert _run(capsys, "audit", "--event-id", event["id"]) == event
    assert _run(capsys, "cases", "list", "--no-reassigned")["total"] == 0


def test_validate_expression_command(
    cli: CorrelationService, capsys: pytest.CaptureFixture[str]
) -> None:
    result = _run(
        capsys,
        "validate-expression",
        "source.email == target.email",
        "--source",
        '{"email": "a"}',
        "--target",
        '{"email": "a"}',
    )

    assert result == {
        "valid": True,
        "error": None,
        "offset": None,
        "result": True,
        "attributes": ["source.email", "target.email"],
    }


def test_malformed_pairs_file_is_a_validation_error(
    cli: CorrelationService, tmp_path: Path
) -> None:
    pairs = tmp_path / "pairs.jsonl"
    pairs.write_text('{"source": {"ref": "a"}}\n', encoding="utf-8")

    with pytest.raises(SystemExit) as excinfo:
        cli_module.main(["correlate", "--scope", "hr", "--pairs", str(pairs)])

    assert excinfo.value.code == 2


def test_stats_rejects_bad_timestamp(cli: CorrelationService) -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli_module.main(["stats", "--start", "not-a-date"])

    assert excinfo.value.code == 2
