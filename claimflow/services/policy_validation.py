import logging
from pathlib import PurePath
from typing import Iterable, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from claimflow.data.category_master import BUSINESS_UNITS, get_head_bucket, get_required_documents, valid_categories
from claimflow.data.policy_defaults import default_policy


logger = logging.getLogger("uvicorn.error")

# Float noise from FX conversion should not trip a cap
_CAP_TOLERANCE = 0.01


async def get_current_policy(db: AsyncIOMotorDatabase) -> dict:
    """The stored policy document merged over the defaults."""
    policy = default_policy()
    doc = await db["policies"].find_one({"_id": "current"})
    if doc:
        doc.pop("_id", None)
        policy.update(doc)
    return policy


def item_amount(item: dict) -> float:
    return float(item.get("amount_in_inr") or item.get("amount") or 0)


def compute_claim_totals(line_items: Iterable[dict], advances: Iterable[dict] = ()) -> dict:
    grand_total = 0.0
    totals_by_head: dict[str, float] = {}
    for item in line_items or []:
        amount = item_amount(item)
        grand_total += amount
        head = item.get("head_bucket") or get_head_bucket(item.get("type", ""))
        totals_by_head[head] = totals_by_head.get(head, 0.0) + amount
    advances_total = sum(float(a.get("amount") or 0) for a in advances or [])
    return {
        "grand_total": round(grand_total, 2),
        "advances_total": round(advances_total, 2),
        "net_payable": round(grand_total - advances_total, 2),
        "totals_by_head": {k: round(v, 2) for k, v in totals_by_head.items()},
    }


def _violation(code: str, message: str, level: str = "error", field: str | None = None, index: int | None = None) -> dict:
    return {"code": code, "message": message, "level": level, "field": field, "line_item_index": index}


def _is_flight(item: dict) -> bool:
    if item.get("type") == "flight":
        return True
    sub = str(item.get("sub_category") or "").lower()
    return "flight" in sub or "airfare" in sub


def _check_caps(item: dict, index: int, city_class: Optional[str], policy: dict, level: str) -> list[dict]:
    out: list[dict] = []
    amount = item_amount(item)
    kind = item.get("type")
    if kind == "meal" and city_class:
        cap = (policy.get("meal_caps") or {}).get(city_class, {}).get(item.get("meal_type", ""))
        if cap is not None and amount > cap + _CAP_TOLERANCE:
            out.append(_violation(
                "MEAL_CAP_EXCEEDED",
                f"{item.get('meal_type', 'meal').capitalize()} exceeds the class {city_class} cap of ₹{cap:,.0f}",
                level, "amount", index,
            ))
    elif kind == "lodging":
        cls = city_class
        cap = (policy.get("lodging_caps") or {}).get(cls) if cls else None
        nights = int(item.get("nights") or 1)
        if cap is not None and amount / max(nights, 1) > cap + _CAP_TOLERANCE:
            out.append(_violation(
                "LODGING_CAP_EXCEEDED",
                f"Lodging exceeds the class {cls} cap of ₹{cap:,.0f} per night",
                level, "amount", index,
            ))
    elif kind == "mileage":
        rate = float(policy.get("mileage_rate") or 0)
        allowed = float(item.get("kilometers") or 0) * rate
        if rate and amount > allowed + _CAP_TOLERANCE:
            out.append(_violation(
                "MILEAGE_RATE_EXCEEDED",
                f"Mileage claim exceeds {item.get('kilometers')} km at ₹{rate:g}/km (₹{allowed:,.2f})",
                level, "amount", index,
            ))
    return out


def validate_against_policy(claim: dict, policy: dict) -> tuple[bool, list[dict]]:
    """Check a claim payload against the current policy.

    Returns ``(is_valid, violations)``; only ``error`` level violations make the
    claim invalid, ``warn`` level ones are stored on the claim for reviewers.
    """
    violations: list[dict] = []
    cap_level = "error" if (policy.get("rules_behavior") or {}).get("cap_exceeded") == "hard" else "warn"
    city_class = (claim.get("trip") or {}).get("city_class")

    for index, item in enumerate(claim.get("line_items") or []):
        if _is_flight(item) and not (item.get("gst_total") or 0) > 0:
            violations.append(_violation(
                "GST_REQUIRED", "GST is mandatory for flight travel expenses", "error", "gst_total", index,
            ))
        if not (item.get("amount") or 0) > 0:
            violations.append(_violation("INVALID_AMOUNT", "Amount must be greater than 0", "error", "amount", index))
        violations.extend(_check_caps(item, index, city_class, policy, cap_level))

    categories = policy.get("claim_categories") or valid_categories()
    if claim.get("category") not in categories:
        violations.append(_violation(
            "INVALID_CATEGORY", f"Category must be one of: {', '.join(categories)}", "error", "category",
        ))
    if claim.get("business_unit") not in BUSINESS_UNITS:
        violations.append(_violation(
            "INVALID_BUSINESS_UNIT",
            f"Business unit must be one of: {', '.join(BUSINESS_UNITS)}",
            "error",
            "business_unit",
        ))

    totals = compute_claim_totals(claim.get("line_items") or [], claim.get("advances") or [])
    limit = float(policy.get("max_amount_before_finance_manager") or 0)
    if limit and totals["grand_total"] > limit:
        violations.append(_violation(
            "AMOUNT_EXCEEDS_LIMIT", f"Amount exceeds limit of ₹{limit:,.0f}", "warn", "grand_total",
        ))

    is_valid = not any(v["level"] == "error" for v in violations)
    if not is_valid:
        logger.info("Claim rejected by policy: %s", [v["code"] for v in violations if v["level"] == "error"])
    return is_valid, violations


def required_documents_for(line_items: Iterable[dict], policy: dict, attachments: Iterable[dict] = ()) -> list[dict]:
    """Documents each line item needs and which of them are still missing.

    Attachments count towards the line item named by their ``line_item_index``
    when their ``label`` is one of the required document types.
    """
    by_type = policy.get("required_documents") or {}
    labels: dict[int, list[str]] = {}
    for att in attachments or []:
        if att.get("label") and att.get("line_item_index") is not None:
            labels.setdefault(int(att["line_item_index"]), []).append(att["label"])
    out = []
    for index, item in enumerate(line_items or []):
        kind = item.get("type", "")
        required = list(by_type.get(kind) or get_required_documents(kind))
        attached = labels.get(index, [])
        out.append({
            "line_item_index": index,
            "type": kind,
            "required": required,
            "attached": attached,
            "missing": [d for d in required if d not in attached],
        })
    return out


def validate_file_upload(filename: str, size: int, policy: dict) -> tuple[bool, list[dict]]:
    violations = []
    allowed = [t.lower() for t in policy.get("allowed_file_types") or []]
    ext = PurePath(filename or "").suffix.lstrip(".").lower()
    if ext not in allowed:
        violations.append(_violation(
            "INVALID_FILE_TYPE", f"File type not allowed. Allowed types: {', '.join(allowed)}",
        ))
    max_mb = policy.get("max_file_size_mb") or 10
    if size > max_mb * 1024 * 1024:
        violations.append(_violation("FILE_TOO_LARGE", f"File size exceeds limit of {max_mb:g}MB"))
    return not violations, violations
