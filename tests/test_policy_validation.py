import pytest

from claimflow.data.policy_defaults import default_policy
from claimflow.services.policy_validation import (
    compute_claim_totals,
    required_documents_for,
    validate_against_policy,
    validate_file_upload,
)


def _claim(*items, city_class="A", **extra):
    claim = {
        "category": "Travel & Lodging",
        "business_unit": "General",
        "trip": {"purpose": "Visit", "city_class": city_class},
        "line_items": list(items),
    }
    claim.update(extra)
    return claim


def _codes(violations):
    return [v["code"] for v in violations]


def test_clean_claim_has_no_violations():
    ok, violations = validate_against_policy(
        _claim({"type": "meal", "meal_type": "breakfast", "amount": 150}), default_policy()
    )
    assert ok
    assert violations == []


def test_flight_needs_gst_even_by_sub_category():
    policy = default_policy()
    ok, violations = validate_against_policy(
        _claim({"type": "admin_misc", "sub_category": "Airfare – Domestic", "amount": 4000}), policy
    )
    assert not ok
    assert _codes(violations) == ["GST_REQUIRED"]
    assert violations[0]["line_item_index"] == 0

    ok, _ = validate_against_policy(_claim({"type": "flight", "amount": 4000, "gst_total": 200}), policy)
    assert ok


@pytest.mark.parametrize(
    "item, code",
    [
        ({"type": "meal", "meal_type": "lunch", "amount": 351}, "MEAL_CAP_EXCEEDED"),
        ({"type": "lodging", "amount": 8001, "nights": 2}, "LODGING_CAP_EXCEEDED"),
        ({"type": "mileage", "kilometers": 10, "amount": 121}, "MILEAGE_RATE_EXCEEDED"),
    ],
)
def test_caps_are_soft_by_default(item, code):
    ok, violations = validate_against_policy(_claim(item), default_policy())
    assert ok
    assert [(v["code"], v["level"]) for v in violations] == [(code, "warn")]


def test_caps_within_limits_and_tolerance():
    policy = default_policy()
    items = [
        {"type": "meal", "meal_type": "lunch", "amount": 350.004},
        {"type": "lodging", "amount": 8000, "nights": 2},
        {"type": "mileage", "kilometers": 10, "amount": 120},
    ]
    assert validate_against_policy(_claim(*items), policy) == (True, [])


def test_meal_caps_follow_city_class():
    policy = default_policy()
    item = {"type": "meal", "meal_type": "dinner", "amount": 450}
    assert validate_against_policy(_claim(item, city_class="A"), policy)[1] == []
    assert _codes(validate_against_policy(_claim(item, city_class="C"), policy)[1]) == ["MEAL_CAP_EXCEEDED"]
    # Without a city class there is no cap to apply
    assert validate_against_policy(_claim(item, city_class=None), policy)[1] == []


def test_hard_caps_invalidate_claim():
    policy = default_policy()
    policy["rules_behavior"]["cap_exceeded"] = "hard"
    ok, violations = validate_against_policy(_claim({"type": "meal", "meal_type": "snack", "amount": 500}), policy)
    assert not ok
    assert violations[0]["level"] == "error"


def test_category_and_business_unit_checks():
    policy = default_policy()
    policy["claim_categories"] = ["Office & Admin"]
    ok, violations = validate_against_policy(
        _claim({"type": "meal", "meal_type": "lunch", "amount": 100}, business_unit="Retail"), policy
    )
    assert not ok
    assert set(_codes(violations)) == {"INVALID_CATEGORY", "INVALID_BUSINESS_UNIT"}


def test_large_claims_are_flagged_for_finance():
    ok, violations = validate_against_policy(
        _claim({"type": "flight", "amount": 12000, "gst_total": 600}), default_policy()
    )
    assert ok
    assert [(v["code"], v["level"]) for v in violations] == [("AMOUNT_EXCEEDS_LIMIT", "warn")]


def test_zero_amount_is_invalid():
    ok, violations = validate_against_policy(_claim({"type": "train", "amount": 0}), default_policy())
    assert not ok
    assert _codes(violations) == ["INVALID_AMOUNT"]


def test_compute_claim_totals_prefers_inr_amounts():
    totals = compute_claim_totals(
        [
            {"type": "meal", "amount": 10, "amount_in_inr": 750},
            {"type": "train", "amount": 420.5},
            {"type": "unknown", "amount": 30},
        ],
        [{"amount": 200}],
    )
    assert totals == {
        "grand_total": 1200.5,
        "advances_total": 200,
        "net_payable": 1000.5,
        "totals_by_head": {"Food & Snacks": 750, "Tickets Fare": 420.5, "Other": 30},
    }


def test_required_documents_track_attachments():
    policy = default_policy()
    items = [{"type": "flight"}, {"type": "mileage"}]
    attachments = [
        {"label": "airline_invoice", "line_item_index": 0},
        {"label": "airline_invoice", "line_item_index": None},
        {"label": None, "line_item_index": 0},
    ]
    docs = required_documents_for(items, policy, attachments)
    assert docs[0]["required"] == ["airline_invoice", "mmt_invoice"]
    assert docs[0]["attached"] == ["airline_invoice"]
    assert docs[0]["missing"] == ["mmt_invoice"]
    assert docs[1]["required"] == ["route_or_log"]


def test_required_documents_fall_back_to_master():
    policy = default_policy()
    policy["required_documents"] = {}
    docs = required_documents_for([{"type": "lodging"}], policy)
    assert docs[0]["required"] == ["hotel_tax_invoice"]


def test_validate_file_upload():
    policy = default_policy()
    assert validate_file_upload("Receipt.PDF", 1024, policy) == (True, [])
    ok, violations = validate_file_upload("notes.docx", 11 * 1024 * 1024, policy)
    assert not ok
    assert _codes(violations) == ["INVALID_FILE_TYPE", "FILE_TOO_LARGE"]
    assert not validate_file_upload("no_extension", 10, policy)[0]
