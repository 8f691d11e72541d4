"""Static expense reference data.

Categories and sub-categories follow the finance team's chart of expense heads;
the ``itc`` note records whether GST input tax credit can be claimed. Line-item
types describe the form a single expense entry takes and which accounting head
bucket it rolls up into.
"""
from typing import Dict, List, Optional


CATEGORY_MASTER: List[dict] = [
    {
        "name": "Travel & Lodging",
        "sub_categories": [
            {"name": "Airfare – Domestic", "itc": "Eligible if business"},
            {"name": "Airfare – International", "itc": "Non-GST"},
            {"name": "Rail/Bus – Domestic", "itc": "Eligible"},
            {"name": "Local Transport (Taxi/Ride-hailing, Metro, Auto)", "itc": "Eligible if GST invoice"},
            {"name": "Fuel & Tolls (Personal Reimbursed)", "itc": "Generally NA"},
            {"name": "Hotel/Lodging – Domestic", "itc": "Eligible; capture GSTIN"},
            {"name": "Hotel/Lodging – International", "itc": "Non-GST"},
            {"name": "Meals – Travel", "itc": "Blocked; tag for T&E analytics"},
            {"name": "Visa/Travel Docs/Insurance", "itc": "NA/Non-GST"},
            {"name": "Foreign Exchange & Bank Fees", "itc": "Non-GST"},
        ],
    },
    {
        "name": "Client Entertainment & Business Meals",
        "sub_categories": [
            {"name": "Client Meetings – Meals/Refreshments", "itc": "Blocked"},
            {"name": "Internal Team Meals (Non-travel)", "itc": "Blocked"},
        ],
        "notes": "F&B ITC is generally blocked unless mandated by law or onward supply.",
    },
    {
        "name": "Employee Welfare & HR",
        "sub_categories": [
            {"name": "Team Events / Celebrations", "itc": "Blocked"},
            {"name": "Gifts & Rewards (Staff)", "itc": "Blocked; track per employee for limits"},
            {"name": "Snacks & Pantry", "itc": "Blocked"},
        ],
    },
    {
        "name": "Training & Development",
        "sub_categories": [
            {"name": "Course/Certification Fees", "itc": "Eligible if business"},
            {"name": "Conference/Seminar/Workshop", "itc": "Eligible"},
            {"name": "Books/Reference Material", "itc": "Eligible"},
            {"name": "Exam Fees", "itc": "Non-GST/Eligible as exp"},
        ],
    },
    {
        "name": "Marketing & Business Development",
        "sub_categories": [
            {"name": "Events/Booths/Sponsorships", "itc": "Eligible"},
            {"name": "Digital Ads/Promotions", "itc": "Eligible"},
            {"name": "Design/Printing/Collateral", "itc": "Eligible"},
            {"name": "Client Gifts (Marketing)", "itc": "Blocked"},
        ],
    },
    {
        "name": "Subscriptions & Memberships",
        "sub_categories": [
            {"name": "Professional Body Memberships", "itc": "Blocked if personal; Eligible if org-level"},
            {"name": "SaaS/Tools – Sales & Marketing", "itc": "Eligible"},
            {"name": "SaaS/Tools – General/IT", "itc": "Eligible"},
            {"name": "Admin software subscription", "itc": "Eligible"},
        ],
    },
    {
        "name": "Office & Admin",
        "sub_categories": [
            {"name": "Stationery & Office Supplies", "itc": "Eligible"},
            {"name": "Courier/Postage", "itc": "Eligible"},
            {"name": "Printing/Photocopy", "itc": "Eligible"},
            {"name": "Communication – Mobile/Data Reimbursement", "itc": "Eligible if GST bill to company GSTIN"},
            {"name": "Rent", "itc": "Eligible"},
        ],
    },
    {
        "name": "IT & Software",
        "sub_categories": [
            {"name": "Software Licences (One-time)", "itc": "Eligible"},
            {"name": "Cloud Services", "itc": "Eligible"},
            {"name": "Peripherals & Small Hardware", "itc": "Eligible"},
            {"name": "IT Equipment (CapEx threshold)", "itc": "Capitalize if > policy; Eligible"},
        ],
    },
    {
        "name": "Project / Client-Billable Expenses",
        "sub_categories": [
            {"name": "Onsite Travel & Lodging (Billable)", "itc": "Mirror travel sub-cats"},
            {"name": "Third-party Tools (Short-term)", "itc": "Eligible"},
            {"name": "Project Incidentals (Supplies/consumables)", "itc": ""},
        ],
    },
    {
        "name": "Finance, Legal & Compliance",
        "sub_categories": [
            {"name": "Bank Charges / Payment Gateway / FX Fees", "itc": "Non-GST"},
            {"name": "Professional Fees (CA/Legal)", "itc": "Eligible"},
            {"name": "Government Fees (ROC, Visa, Permit)", "itc": "Non-GST"},
            {"name": "GST/Taxes (Non-creditable)", "itc": "Tracking only; no ITC"},
        ],
    },
    {
        "name": "Advances & Reconciliations",
        "sub_categories": [
            {"name": "Employee Advance – Travel"},
            {"name": "Employee Advance – General"},
            {"name": "Advance Settlement", "itc": "Contra"},
        ],
    },
]

LINE_ITEM_TYPES: Dict[str, dict] = {
    "flight": {
        "maps_to": ["Travel & Lodging > Airfare – Domestic", "Travel & Lodging > Airfare – International"],
        "fields": ["date", "from", "to", "airline", "pnr", "amount", "notes"],
        "attachments": "multi",
        "required_documents": ["airline_invoice", "ota_invoice"],
        "head_bucket": "Tickets Fare",
    },
    "train": {
        "maps_to": ["Travel & Lodging > Rail/Bus – Domestic"],
        "fields": ["date", "from", "to", "class", "amount", "notes"],
        "attachments": "multi",
        "required_documents": ["ticket", "payment_proof"],
        "head_bucket": "Tickets Fare",
    },
    "local_travel": {
        "maps_to": ["Travel & Lodging > Local Transport (Taxi/Ride-hailing, Metro, Auto)"],
        "fields": ["date", "mode", "from", "to", "amount", "notes"],
        "attachments": "multi",
        "required_documents": ["receipt"],
        "head_bucket": "Travel",
    },
    "mileage": {
        "maps_to": ["Travel & Lodging > Fuel & Tolls (Personal Reimbursed)"],
        "fields": ["date", "kilometers", "amount"],
        "attachments": "optional",
        "required_documents": [],
        "head_bucket": "Travel",
    },
    "lodging": {
        "maps_to": ["Travel & Lodging > Hotel/Lodging – Domestic", "Travel & Lodging > Hotel/Lodging – International"],
        "fields": ["check_in", "check_out", "city", "nights", "amount", "gst.gstin", "gst.tax_breakup"],
        "attachments": "multi",
        "required_documents": ["hotel_tax_invoice"],
        "head_bucket": "Lodging",
    },
    "meal": {
        "maps_to": ["Travel & Lodging > Meals – Travel"],
        "fields": ["date", "meal_type", "city", "amount", "notes"],
        "attachments": "multi",
        "required_documents": ["bill"],
        "head_bucket": "Food & Snacks",
    },
    "client_entertainment": {
        "maps_to": ["Client Entertainment & Business Meals > Client Meetings – Meals/Refreshments"],
        "fields": ["date", "customer", "attendee_count", "amount", "notes"],
        "attachments": "multi",
        "required_documents": ["bill"],
        "head_bucket": "Client Entertainment",
    },
    "team_meal": {
        "maps_to": ["Client Entertainment & Business Meals > Internal Team Meals (Non-travel)"],
        "fields": ["date", "attendee_count", "amount", "notes"],
        "attachments": "multi",
        "required_documents": ["bill"],
        "head_bucket": "Food & Snacks",
    },
    "admin_misc": {
        "maps_to": [
            "Office & Admin > Printing/Photocopy",
            "Office & Admin > Stationery & Office Supplies",
            "Office & Admin > Courier/Postage",
        ],
        "fields": ["date", "sub_category", "amount", "notes"],
        "attachments": "multi",
        "required_documents": ["bill"],
        "head_bucket": "Admin Exp",
    },
}

BUSINESS_UNITS = ["Alliance", "Coinnovation", "General"]

CITY_CLASSES = ["A", "B", "C"]

MEAL_TYPES = ["breakfast", "lunch", "dinner", "snack"]

TRAVEL_MODES = ["auto", "taxi", "metro", "bus", "ride_hailing"]

DOCUMENT_TYPES = [
    "airline_invoice",
    "ota_invoice",
    "ticket",
    "payment_proof",
    "receipt",
    "hotel_tax_invoice",
    "bill",
    "supporting_doc",
]


def valid_categories() -> List[str]:
    return [c["name"] for c in CATEGORY_MASTER]


def get_sub_categories(category_name: str) -> List[dict]:
    for cat in CATEGORY_MASTER:
        if cat["name"] == category_name:
            return cat["sub_categories"]
    return []


def get_line_item_types_for_sub_category(sub_category_name: str) -> List[str]:
    return [
        key
        for key, entry in LINE_ITEM_TYPES.items()
        if any(sub_category_name in mapping for mapping in entry["maps_to"])
    ]


def get_head_bucket(line_item_type: str) -> str:
    entry = LINE_ITEM_TYPES.get(line_item_type)
    return entry["head_bucket"] if entry else "Other"


def get_required_documents(line_item_type: str) -> List[str]:
    entry = LINE_ITEM_TYPES.get(line_item_type)
    return list(entry.get("required_documents", [])) if entry else []


def get_itc_flag(sub_category_name: str) -> Optional[str]:
    for cat in CATEGORY_MASTER:
        for sub in cat["sub_categories"]:
            if sub["name"] == sub_category_name:
                return sub.get("itc")
    return None
