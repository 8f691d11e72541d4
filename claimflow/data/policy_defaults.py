from claimflow.data.category_master import CITY_CLASSES, valid_categories


def default_policy() -> dict:
    """Policy document created the first time the policy is read."""
    return {
        # Administrative settings
        "approval_mode": "both",
        "claim_categories": valid_categories(),
        "max_amount_before_finance_manager": 10000,
        "allowed_file_types": ["pdf", "jpg", "jpeg", "png"],
        "max_file_size_mb": 10,
        "payout_channels": ["Bank Transfer", "Cash", "Check"],
        "auto_assign_supervisors": False,
        "claim_retention_days": 365,
        # Travel and expense rules
        "version": "v1.0",
        "mileage_rate": 12,
        "city_classes": list(CITY_CLASSES),
        "meal_caps": {
            "A": {"breakfast": 200, "lunch": 350, "dinner": 500, "snack": 150},
            "B": {"breakfast": 150, "lunch": 300, "dinner": 400, "snack": 120},
            "C": {"breakfast": 120, "lunch": 250, "dinner": 350, "snack": 100},
        },
        "lodging_caps": {"A": 4000, "B": 3000, "C": 2000},
        "required_documents": {
            "flight": ["airline_invoice", "mmt_invoice"],
            "train": ["ticket", "payment_proof"],
            "local_travel": ["receipt_or_reason"],
            "meal": ["restaurant_bill"],
            "lodging": ["hotel_invoice"],
            "client_entertainment": ["bill_or_proof"],
            "mileage": ["route_or_log"],
            "admin_misc": ["supporting_doc"],
        },
        "admin_sub_categories": ["printout", "repairs", "filing", "others"],
        "rules_behavior": {"missing_documents": "hard", "cap_exceeded": "soft"},
        "itc_flags": {
            "flight": "Eligible if business",
            "train": "Eligible",
            "local_travel": "Eligible if GST invoice",
            "mileage": "Generally NA",
            "lodging": "Eligible; capture GSTIN",
            "meal": "Blocked",
            "client_entertainment": "Blocked",
            "team_meal": "Blocked",
            "admin_misc": "Eligible",
        },
    }
