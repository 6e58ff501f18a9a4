"""Public product catalog.

Prices are display values in cents; what customers are actually charged
is the Stripe price configured in STRIPE_PRICES.
"""

PRODUCTS = [
    {
        "id": "semaglutide",
        "name": "Compounded Semaglutide + B12",
        "type": "GLP-1 Agonist",
        "description": "Targets the GLP-1 receptor for proven weight loss results",
        "avgWeightLoss": "13-15%",
        "includes": "Provider consultation, prescription, medication, supplies, free shipping",
        "plans": [
            {"type": "monthly", "price": 29900, "label": "$299/mo"},
            {"type": "3month", "price": 24900, "label": "$249/mo",
             "savings": "Save $150", "billedAs": "$747 quarterly"},
            {"type": "6month", "price": 19900, "label": "$199/mo",
             "savings": "Save $600", "billedAs": "$1,194 semi-annually"},
        ],
    },
    {
        "id": "tirzepatide",
        "name": "Compounded Tirzepatide + B12",
        "type": "GLP-1/GIP Dual Agonist",
        "description": "Works on both GLP-1 and GIP receptors for maximum weight loss",
        "avgWeightLoss": "20-21%",
        "includes": "Provider consultation, prescription, medication, supplies, free shipping",
        "plans": [
            {"type": "monthly", "price": 39900, "label": "$399/mo"},
            {"type": "3month", "price": 34900, "label": "$349/mo",
             "savings": "Save $150", "billedAs": "$1,047 quarterly"},
            {"type": "6month", "price": 29900, "label": "$299/mo",
             "savings": "Save $600", "billedAs": "$1,794 semi-annually"},
        ],
    },
]
