from __future__ import annotations

from datetime import UTC, date, datetime

import pytest

from correlator.api.schemas import (
    CaseResponse,
    ListCasesRequest,
    RecordPairPayload,
    SimulateThresholdsRequest,
    TrendsResponse,
    UpdateRuleRequest,
    parse_payload,
    parse_scope,
)
from correlator.domain.correlation import CorrelationTrends, DailyTrend
from correlator.domain.errors import ValidationError, ValidationErrorKind
from correlator.domain.model import CaseStatus, Scope
from tests.support.correlation import HR, TENANT, make_candidate, make_case, make_config


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("tenant", TENANT), ("hr", HR), ("connector:hr", HR), (" hr ", HR)],
)
def test_parse_scope(raw: str, expected: Scope) -> None:
    assert parse_scope(raw) == expected


def test_parse_scope_rejects_blank() -> None:
    with pytest.raises(ValidationError) as excinfo:
        parse_scope("connector:")

    assert excinfo.value.fields == ("scope",)


def test_parse_payload_maps_pydantic_errors_to_fields() -> None:
    with pytest.raises(ValidationError) as excinfo:
        parse_payload(RecordPairPayload, {"source": {"ref": "a", "attributes": []}})

    kinds = {error.field: error.kind for error in excinfo.value.errors}
    assert kinds["source.attributes"] is ValidationErrorKind.INVALID_VALUE
    assert kinds["target"] is ValidationErrorKind.MISSING_FIELD


def test_record_pair_payload_builds_records() -> None:
    pair = parse_payload(
        RecordPairPayload,
        {
            "source": {"ref": "hr:a", "attributes": {"email": "a@x"}, "is_deactivated": True},
            "target": {"ref": "idn:a", "attributes": {"email": "a@x"}, "unknown": 1},
        },
    ).to_pair()

    assert pair.source.is_deactivated
    assert pair.target.get("email") == "a@x"


def test_update_request_only_reports_sent_fields() -> None:
    request = parse_payload(UpdateRuleRequest, {"threshold": 0.7, "algorithm": None})

    assert request.changes() == {"threshold": 0.7, "algorithm": None}


def test_simulation_request_falls_back_to_committed_values() -> None:
    committed = make_config(auto=0.9, manual=0.3, batch_size=25)

    draft = SimulateThresholdsRequest(auto_confirm_threshold=0.5).to_draft(committed)

    assert draft.auto_confirm_threshold == 0.5
    assert draft.manual_review_threshold == 0.3
    assert draft.batch_size == 25
    assert draft.tuning_mode is True


def test_list_cases_request_builds_query() -> None:
    query = ListCasesRequest(status=CaseStatus.PENDING, scope="hr", limit=10).to_query()
    reassigned = parse_payload(ListCasesRequest, {"reassigned": "true"}).to_query()

    assert query.scope == HR
    assert query.status is CaseStatus.PENDING
    assert query.limit == 10
    assert query.reassigned is None
    assert reassigned.reassigned is True


def test_case_response_exposes_candidates() -> None:
    case = make_case(make_candidate("idn:a", score=0.6), make_candidate("idn:b", score=0.4))

    response = CaseResponse.from_case(case)

    assert response.scope == "connector:hr"
    assert [c.target_ref for c in response.candidates] == ["idn:a", "idn:b"]
    assert response.highest_confidence == 0.6


def test_trends_response_serialises_days() -> None:
    trends = CorrelationTrends(
        scope=HR,
        period_start=datetime(2025, 1, 1, tzinfo=UTC),
        period_end=None,
        daily_trends=(
            DailyTrend(
                date=date(2025, 1, 15),
                total_evaluated=4,
                auto_confirmed=3,
                manual_review=1,
                no_match=0,
                average_confidence=0.8,
            ),
        ),
    )

    payload = TrendsResponse.from_trends(trends).model_dump(mode="json")

    assert payload["scope"] == "connector:hr"
    assert payload["period_end"] is None
    assert payload["daily_trends"] == [
        {
            "date": "2025-01-15",
            "total_evaluated": 4,
            "auto_confirmed": 3,
            "manual_review": 1,
            "no_match": 0,
            "average_confidence": 0.8,
        }
    ]
