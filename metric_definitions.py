"""
Metric definitions: source columns, formula and the question each metric answers.

Each metric is defined with:
- required_columns: event-table columns needed for computation
- formula: short text describing the computation
- business_question: what a sales manager asks of it
- output_type: scalar | table

The prompt layer sends a condensed glossary of these definitions to the
narrative service so generated text names metrics the same way the engine
computes them.
"""

METRIC_DEFINITIONS = {
    "visit_count": {
        "name": "visit_count",
        "label": "Jumlah kunjungan",
        "required_columns": ["checkins.salesman_id", "checkins.ts"],
        "formula": "count(checkins in window)",
        "business_question": "How active was the salesman in the field?",
        "output_type": "scalar",
    },
    "unique_outlet_count": {
        "name": "unique_outlet_count",
        "label": "Outlet unik dikunjungi",
        "required_columns": ["checkins.outlet_id", "checkins.ts"],
        "formula": "nunique(checkins.outlet_id in window)",
        "business_question": "How many different outlets were covered?",
        "output_type": "scalar",
    },
    "total_sales_amount": {
        "name": "total_sales_amount",
        "label": "Total penjualan",
        "required_columns": ["sales.amount", "sales.ts"],
        "formula": "sum(sales.amount in window), missing amount = 0",
        "business_question": "How much revenue was booked?",
        "output_type": "scalar",
    },
    "total_sales_qty": {
        "name": "total_sales_qty",
        "label": "Unit terjual",
        "required_columns": ["sales.qty", "sales.ts"],
        "formula": "sum(sales.qty in window), missing qty = 0",
        "business_question": "How many units moved?",
        "output_type": "scalar",
    },
    "outlet_with_sales_count": {
        "name": "outlet_with_sales_count",
        "label": "Outlet dengan penjualan",
        "required_columns": ["sales.outlet_id", "sales.amount", "sales.ts"],
        "formula": "nunique(sales.outlet_id where amount > 0 in window)",
        "business_question": "How many visited outlets actually bought?",
        "output_type": "scalar",
    },
    "conversion_rate": {
        "name": "conversion_rate",
        "label": "Konversi",
        "required_columns": ["sales.outlet_id", "sales.amount", "checkins.ts"],
        "formula": "outlet_with_sales_count / visit_count, 0 when visit_count = 0",
        "business_question": "How often does a visit turn into a sale?",
        "output_type": "scalar",
    },
    "avg_conversion_rate": {
        "name": "avg_conversion_rate",
        "label": "Rata-rata konversi",
        "required_columns": ["sales.outlet_id", "sales.amount", "checkins.ts"],
        "formula": "sum(outlet_with_sales_count) / sum(visit_count) over all salesmen",
        "business_question": "How well does the whole team convert visits?",
        "output_type": "scalar",
    },
    "visit_per_day_bins": {
        "name": "visit_per_day_bins",
        "label": "Pola kunjungan per hari",
        "required_columns": ["checkins.salesman_id", "sales.outlet_id", "sales.amount"],
        "formula": "bucket salesmen by visit_count / days into 0-2, 3-5, 6-8, 9+; weighted conversion per bucket",
        "business_question": "Does visiting more per day convert better?",
        "output_type": "table",
    },
}


def get_all_required_columns() -> list[str]:
    """Union of all required columns across metrics. Used for validation."""
    seen: set[str] = set()
    for defn in METRIC_DEFINITIONS.values():
        for col in defn["required_columns"]:
            seen.add(col)
    return sorted(seen)


def metric_glossary(names: list[str] | None = None) -> str:
    names = names or list(METRIC_DEFINITIONS)
    return "\n".join(
        f"- {METRIC_DEFINITIONS[n]['name']} ({METRIC_DEFINITIONS[n]['label']}): {METRIC_DEFINITIONS[n]['formula']}"
        for n in names
    )
