from __future__ import annotations

import argparse
import json
import logging
import signal
import sys
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any
from uuid import UUID

from dotenv import load_dotenv

from correlator.api.schemas import (
    AuditEventResponse,
    BatchReportResponse,
    CasePageResponse,
    CaseResponse,
    CreateRuleRequest,
    ErrorResponse,
    JobResponse,
    ListCasesRequest,
    RecordPairPayload,
    RuleResponse,
    SimulateThresholdsRequest,
    SimulationReportResponse,
    StatisticsResponse,
    ThresholdResponse,
    TrendsResponse,
    UpdateRuleRequest,
    UpsertThresholdRequest,
    ValidateExpressionRequest,
    parse_payload,
    parse_scope,
)
from correlator.app import build_service
from correlator.config import configure_logging, env_bool
from correlator.domain.correlation import CancellationToken
from correlator.domain.errors import CorrelationError, ValidationError
from correlator.domain.model import (
    Actor,
    AuditEventType,
    AuditOutcome,
    CaseStatus,
    MatchType,
    TriggerType,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator, Sequence
    from types import FrameType

    from pydantic import BaseModel

    from correlator.app import CorrelationService
    from correlator.domain.model import RecordPair

log = logging.getLogger(__name__)


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Correlate connector accounts with identities")
    parser.add_argument(
        "--database-uri",
        type=str,
        default=None,
        help="SQLAlchemy URL (defaults to DATABASE_URI or the local data dir)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init-db", help="Create or upgrade the database schema")

    rules = subparsers.add_parser("rules", help="Correlation rule management")
    rules_sub = rules.add_subparsers(dest="rules_command", required=True)
    rules_create = rules_sub.add_parser("create", help="Create a rule from a JSON document")
    rules_create.add_argument("--scope", type=str, required=True, help="tenant or connector id")
    rules_create.add_argument("--file", type=Path, required=True, help="JSON rule payload")
    rules_update = rules_sub.add_parser("update", help="Apply a partial JSON update to a rule")
    rules_update.add_argument("rule_id", type=str)
    rules_update.add_argument("--file", type=Path, required=True, help="JSON rule changes")
    rules_delete = rules_sub.add_parser("delete", help="Delete a rule")
    rules_delete.add_argument("rule_id", type=str)
    rules_show = rules_sub.add_parser("show", help="Show one rule")
    rules_show.add_argument("rule_id", type=str)
    rules_list = rules_sub.add_parser("list", help="List rules")
    rules_list.add_argument("--scope", type=str, help="Only rules of this scope")
    rules_list.add_argument("--match-type", choices=[m.value for m in MatchType])
    rules_list.add_argument("--tier", type=int)
    rules_list.add_argument(
        "--active-only",
        action="store_true",
        help="Hide deactivated rules",
    )

    expression = subparsers.add_parser(
        "validate-expression",
        help="Compile an expression and optionally evaluate it against sample records",
    )
    expression.add_argument("expression", type=str)
    expression.add_argument("--source", type=str, help="JSON object of source attributes")
    expression.add_argument("--target", type=str, help="JSON object of target attributes")

    thresholds = subparsers.add_parser("thresholds", help="Threshold configuration")
    thresholds_sub = thresholds.add_subparsers(dest="thresholds_command", required=True)
    thresholds_show = thresholds_sub.add_parser("show", help="Show effective thresholds")
    thresholds_show.add_argument("--scope", type=str, required=True)
    thresholds_set = thresholds_sub.add_parser("set", help="Store thresholds for a scope")
    thresholds_set.add_argument("--scope", type=str, required=True)
    thresholds_set.add_argument("--auto-confirm", type=float, required=True)
    thresholds_set.add_argument("--manual-review", type=float, required=True)
    thresholds_set.add_argument("--batch-size", type=int)
    thresholds_set.add_argument("--tuning-mode", action="store_true")
    thresholds_set.add_argument("--include-deactivated", action="store_true")

    correlate = subparsers.add_parser("correlate", help="Evaluate record pairs and commit")
    correlate.add_argument("--scope", type=str, required=True)
    correlate.add_argument(
        "--pairs",
        type=Path,
        required=True,
        help="JSONL file, one {source, target} record pair per line",
    )
    correlate.add_argument(
        "--trigger",
        choices=["batch", "import"],
        default="batch",
        help="Trigger type recorded on opened cases",
    )

    simulate = subparsers.add_parser(
        "simulate",
        help="Preview decisions under proposed thresholds without writing",
    )
    simulate.add_argument("--scope", type=str, required=True)
    simulate.add_argument("--pairs", type=Path, required=True, help="JSONL sample of pairs")
    simulate.add_argument("--auto-confirm", type=float)
    simulate.add_argument("--manual-review", type=float)
    simulate.add_argument("--batch-size", type=int)

    cases = subparsers.add_parser("cases", help="Manual review queue")
    cases_sub = cases.add_subparsers(dest="cases_command", required=True)
    cases_list = cases_sub.add_parser("list", help="List cases")
    cases_list.add_argument("--status", choices=[s.value for s in CaseStatus])
    cases_list.add_argument("--scope", type=str)
    cases_list.add_argument("--source-ref", type=str)
    cases_list.add_argument("--assigned-to", type=str)
    cases_list.add_argument(
        "--reassigned",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Only pending cases with an assignee; --no-reassigned for those without",
    )
    cases_list.add_argument("--created-from", type=str, help="ISO-8601 lower bound")
    cases_list.add_argument("--created-to", type=str, help="ISO-8601 exclusive upper bound")
    cases_list.add_argument("--oldest-first", action="store_true")
    cases_list.add_argument("--limit", type=int)
    cases_list.add_argument("--offset", type=int, default=0)
    cases_show = cases_sub.add_parser("show", help="Show one case")
    cases_show.add_argument("case_id", type=str)
    cases_confirm = cases_sub.add_parser("confirm", help="Link the chosen candidate")
    cases_confirm.add_argument("case_id", type=str)
    cases_confirm.add_argument("--candidate-id", type=str, required=True)
    cases_confirm.add_argument("--actor", type=str, required=True)
    cases_confirm.add_argument("--reason", type=str)
    cases_reject = cases_sub.add_parser("reject", help="Reject every candidate")
    cases_reject.add_argument("case_id", type=str)
    cases_reject.add_argument("--reason", type=str, required=True)
    cases_reject.add_argument("--actor", type=str, required=True)
    cases_reassign = cases_sub.add_parser("reassign", help="Hand the case to another reviewer")
    cases_reassign.add_argument("case_id", type=str)
    cases_reassign.add_argument("--to", dest="assigned_to", type=str, required=True)
    cases_reassign.add_argument("--actor", type=str, required=True)
    cases_reassign.add_argument("--reason", type=str)
    cases_identity = cases_sub.add_parser(
        "create-identity",
        help="Provision a new identity for the case's source account",
    )
    cases_identity.add_argument("case_id", type=str)
    cases_identity.add_argument("--actor", type=str, required=True)
    cases_identity.add_argument("--reason", type=str)

    job = subparsers.add_parser("job", help="Show a correlation job")
    job.add_argument("job_id", type=str)

    stats = subparsers.add_parser("stats", help="Decision statistics over finished jobs")
    stats.add_argument("--scope", type=str)
    stats.add_argument("--start", type=str, help="ISO-8601 timestamp (UTC), inclusive")
    stats.add_argument("--end", type=str, help="ISO-8601 timestamp (UTC), exclusive")
    stats.add_argument(
        "--trends",
        action="store_true",
        help="Break the window down into per-day decision counts",
    )

    audit = subparsers.add_parser("audit", help="List audit events")
    audit.add_argument("--event-id", type=str, help="Show this one event and ignore filters")
    audit.add_argument("--case-id", type=str)
    audit.add_argument("--event-type", choices=[e.value for e in AuditEventType])
    audit.add_argument("--scope", type=str)
    audit.add_argument("--outcome", choices=[o.value for o in AuditOutcome])
    audit.add_argument("--actor", type=str, help="Only events recorded for this actor id")
    audit.add_argument("--start", type=str, help="ISO-8601 timestamp (UTC), inclusive")
    audit.add_argument("--end", type=str, help="ISO-8601 timestamp (UTC), exclusive")
    audit.add_argument("--limit", type=int)
    audit.add_argument("--offset", type=int, default=0)

    return parser.parse_args(list(argv))


def _parse_iso_datetime(value: str) -> datetime:
    try:
        normalized = value.strip()
        if normalized.endswith("Z"):
            normalized = normalized[:-1] + "+00:00"
        dt = datetime.fromisoformat(normalized)
    except ValueError as exc:
        raise ValueError(f"Invalid ISO timestamp: {value}") from exc
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def _parse_uuid(value: str) -> UUID:
    try:
        return UUID(value)
    except ValueError as exc:
        raise ValueError(f"Invalid UUID: {value}") from exc


def _load_json(text: str, *, what: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON in {what}: {exc.msg}") from exc


def _read_object(path: Path) -> dict[str, Any]:
    payload = _load_json(path.read_text(encoding="utf-8"), what=str(path))
    if not isinstance(payload, dict):
        raise ValueError(f"{path} must contain a JSON object")
    return payload


def _iter_pairs(path: Path) -> Iterator[RecordPair]:
    """Yield pairs from a JSONL file one line at a time."""
    with path.open(encoding="utf-8") as handle:
        for number, line in enumerate(handle, start=1):
            if not line.strip():
                continue
            payload = _load_json(line, what=f"{path}:{number}")
            yield parse_payload(RecordPairPayload, payload).to_pair()


def _emit(model: BaseModel) -> None:
    print(model.model_dump_json(indent=2))  # noqa: T201


def _emit_lines(models: Sequence[BaseModel]) -> None:
    for model in models:
        print(model.model_dump_json())  # noqa: T201


def _run_rules(service: CorrelationService, args: argparse.Namespace) -> None:
    if args.rules_command == "create":
        request = parse_payload(CreateRuleRequest, _read_object(args.file))
        _emit(RuleResponse.from_rule(service.create_rule(parse_scope(args.scope), request)))
    elif args.rules_command == "update":
        changes = parse_payload(UpdateRuleRequest, _read_object(args.file))
        _emit(RuleResponse.from_rule(service.update_rule(_parse_uuid(args.rule_id), changes)))
    elif args.rules_command == "delete":
        service.delete_rule(_parse_uuid(args.rule_id))
        log.info("Deleted rule %s", args.rule_id)
    elif args.rules_command == "show":
        _emit(RuleResponse.from_rule(service.get_rule(_parse_uuid(args.rule_id))))
    elif args.rules_command == "list":
        rules = service.list_rules(
            parse_scope(args.scope) if args.scope else None,
            match_type=MatchType(args.match_type) if args.match_type else None,
            is_active=True if args.active_only else None,
            tier=args.tier,
        )
        _emit_lines([RuleResponse.from_rule(rule) for rule in rules])
    else:
        raise ValueError(f"Unsupported rules command: {args.rules_command}")


def _run_thresholds(service: CorrelationService, args: argparse.Namespace) -> None:
    scope = parse_scope(args.scope)
    if args.thresholds_command == "show":
        _emit(ThresholdResponse.from_config(service.get_thresholds(scope)))
    elif args.thresholds_command == "set":
        payload: dict[str, Any] = {
            "auto_confirm_threshold": args.auto_confirm,
            "manual_review_threshold": args.manual_review,
            "tuning_mode": args.tuning_mode,
            "include_deactivated": args.include_deactivated,
        }
        if args.batch_size is not None:
            payload["batch_size"] = args.batch_size
        request = parse_payload(UpsertThresholdRequest, payload)
        _emit(ThresholdResponse.from_config(service.upsert_thresholds(scope, request)))
    else:
        raise ValueError(f"Unsupported thresholds command: {args.thresholds_command}")


def _run_cases(service: CorrelationService, args: argparse.Namespace) -> None:
    if args.cases_command == "list":
        request = parse_payload(
            ListCasesRequest,
            {
                "status": args.status,
                "scope": args.scope,
                "source_ref": args.source_ref,
                "assigned_to": args.assigned_to,
                "reassigned": args.reassigned,
                "created_from": (
                    _parse_iso_datetime(args.created_from) if args.created_from else None
                ),
                "created_to": _parse_iso_datetime(args.created_to) if args.created_to else None,
                "newest_first": not args.oldest_first,
                "limit": args.limit,
                "offset": args.offset,
            },
        )
        _emit(CasePageResponse.from_page(service.list_cases(request)))
        return

    case_id = _parse_uuid(args.case_id)
    if args.cases_command == "show":
        case = service.get_case(case_id)
    elif args.cases_command == "confirm":
        case = service.confirm_case(
            case_id,
            _parse_uuid(args.candidate_id),
            actor=Actor.user(args.actor),
            reason=args.reason,
        )
    elif args.cases_command == "reject":
        case = service.reject_case(case_id, args.reason, actor=Actor.user(args.actor))
    elif args.cases_command == "reassign":
        case = service.reassign_case(
            case_id, args.assigned_to, actor=Actor.user(args.actor), reason=args.reason
        )
    elif args.cases_command == "create-identity":
        case = service.create_identity_from_case(
            case_id, actor=Actor.user(args.actor), reason=args.reason
        )
    else:
        raise ValueError(f"Unsupported cases command: {args.cases_command}")
    _emit(CaseResponse.from_case(case))


def _run_stats(service: CorrelationService, args: argparse.Namespace) -> None:
    scope = parse_scope(args.scope) if args.scope else None
    start = _parse_iso_datetime(args.start) if args.start else None
    end = _parse_iso_datetime(args.end) if args.end else None
    if args.trends:
        _emit(TrendsResponse.from_trends(service.trends(scope, start=start, end=end)))
    else:
        _emit(StatisticsResponse.from_statistics(service.statistics(scope, start=start, end=end)))


def _run_audit(service: CorrelationService, args: argparse.Namespace) -> None:
    if args.event_id:
        _emit(AuditEventResponse.from_event(service.get_audit_event(_parse_uuid(args.event_id))))
        return
    events = service.list_audit_events(
        case_id=_parse_uuid(args.case_id) if args.case_id else None,
        event_type=AuditEventType(args.event_type) if args.event_type else None,
        scope=parse_scope(args.scope) if args.scope else None,
        outcome=AuditOutcome(args.outcome) if args.outcome else None,
        actor_id=args.actor,
        created_from=_parse_iso_datetime(args.start) if args.start else None,
        created_to=_parse_iso_datetime(args.end) if args.end else None,
        limit=args.limit,
        offset=args.offset,
    )
    _emit_lines([AuditEventResponse.from_event(event) for event in events])


def _with_cancellation[T](work: Callable[[CancellationToken], T]) -> T:
    """Run ``work`` with Ctrl+C turned into a cooperative cancellation."""

    token = CancellationToken()

    def handler(_signal_received: int, _frame: FrameType | None) -> None:
        log.info("Cancellation requested; finishing the current chunk")
        token.cancel()

    previous = signal.signal(signal.SIGINT, handler)
    try:
        return work(token)
    finally:
        signal.signal(signal.SIGINT, previous)


def _dispatch(service: CorrelationService, args: argparse.Namespace) -> None:
    if args.command == "init-db":
        log.info("Database schema is up to date")
    elif args.command == "rules":
        _run_rules(service, args)
    elif args.command == "validate-expression":
        payload: dict[str, Any] = {"expression": args.expression}
        if args.source is not None or args.target is not None:
            payload["test_input"] = {
                "source": _load_json(args.source or "{}", what="--source"),
                "target": _load_json(args.target or "{}", what="--target"),
            }
        request = parse_payload(ValidateExpressionRequest, payload)
        _emit(service.validate_expression(request))
    elif args.command == "thresholds":
        _run_thresholds(service, args)
    elif args.command == "correlate":
        scope = parse_scope(args.scope)
        report = _with_cancellation(
            lambda token: service.correlate(
                scope,
                _iter_pairs(args.pairs),
                trigger=TriggerType(args.trigger),
                cancel=token,
            )
        )
        _emit(BatchReportResponse.from_report(report))
    elif args.command == "simulate":
        scope = parse_scope(args.scope)
        request = parse_payload(
            SimulateThresholdsRequest,
            {
                "auto_confirm_threshold": args.auto_confirm,
                "manual_review_threshold": args.manual_review,
                "batch_size": args.batch_size,
            },
        )
        simulation = _with_cancellation(
            lambda token: service.simulate_thresholds(
                scope, request, _iter_pairs(args.pairs), cancel=token
            )
        )
        _emit(SimulationReportResponse.from_report(simulation))
    elif args.command == "cases":
        _run_cases(service, args)
    elif args.command == "job":
        _emit(JobResponse.from_job(service.get_job(_parse_uuid(args.job_id))))
    elif args.command == "stats":
        _run_stats(service, args)
    elif args.command == "audit":
        _run_audit(service, args)
    else:
        raise ValueError(f"Unsupported command: {args.command}")


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    configure_logging(
        level=logging.DEBUG if env_bool("CORRELATOR_DEBUG", False) else logging.INFO  # noqa: FBT003
    )
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    parsed_args = _parse_args(args_list)

    try:
        service = build_service(database_uri=parsed_args.database_uri)
        _dispatch(service, parsed_args)
    except (ValidationError, ValueError) as exc:
        log.error("CLI validation error: %s", exc)  # noqa: TRY400
        print(ErrorResponse.from_exception(exc).model_dump_json(), file=sys.stderr)  # noqa: T201
        sys.exit(2)
    except CorrelationError as exc:
        log.error("%s", exc)  # noqa: TRY400
        print(ErrorResponse.from_exception(exc).model_dump_json(), file=sys.stderr)  # noqa: T201
        sys.exit(1)
    except Exception:
        log.exception("Fatal error")
        sys.exit(1)


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Handle SIGINT (Ctrl+C) gracefully."""
    log.info("Closed by user (Ctrl+C)")
    sys.exit(0)


def run() -> None:
    load_dotenv()
    signal.signal(signal.SIGINT, sigint_handler)
    main()


if __name__ == "__main__":
    run()
