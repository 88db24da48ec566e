from __future__ import annotations

import math

import pandas as pd
import pytest

from prepare_category_sales_data import (
    build_category_stats,
    clean_numeric,
    count_best_seller_status,
    normalize_products,
    normalize_record,
)


def product_row(
    product_id: object = "1",
    category: object = "Drills",
    units_this: object = 10,
    units_last: object = 5,
    price: object = 100,
    cost: object = 60,
    stock: object = 3,
    status: object = "A",
    brand: object = "Makita",
) -> dict:
    return {
        "Product ID": product_id,
        "Brand": brand,
        "Parent Category": category,
        "Total Sales this Year": units_this,
        "Total Sales Last Year": units_last,
        "Selling Price ex VAT": price,
        "Cost Price ex VAT": cost,
        "Availabile Stock": stock,
        "Best Seller Status": status,
    }


def stats_by_category(rows: list[dict]) -> dict:
    products = normalize_products(pd.DataFrame(rows))
    stats = build_category_stats(products)
    return {row["category"]: row for row in stats.to_dict(orient="records")}


def test_single_drill_row_accumulates_every_measure():
    stats = stats_by_category([product_row()])

    drills = stats["Drills"]
    assert drills["units_this_year"] == 10
    assert drills["units_last_year"] == 5
    assert drills["revenue_last_year"] == 500
    assert drills["revenue_this_year"] == 1000
    assert drills["stock_units"] == 3
    assert drills["stock_value"] == 180
    assert drills["profit_sum"] == 200
    assert drills["revenue_for_profit"] == drills["revenue_last_year"]
    assert drills["product_count"] == 1


@pytest.mark.parametrize("product_id", ["", 0, None, float("nan")])
def test_rows_without_product_id_are_discarded(product_id):
    rows = [product_row(), product_row(product_id=product_id, category="Saws")]

    products = normalize_products(pd.DataFrame(rows))
    stats = build_category_stats(products)

    assert list(products["category"]) == ["Drills"]
    assert list(stats["category"]) == ["Drills"]
    assert normalize_record(rows[1]) is None


def test_missing_selling_price_adds_zero_revenue():
    row = product_row()
    del row["Selling Price ex VAT"]

    stats = stats_by_category([row])

    drills = stats["Drills"]
    assert drills["revenue_last_year"] == 0
    assert drills["revenue_this_year"] == 0
    assert drills["profit_sum"] == -300
    assert not any(
        isinstance(value, float) and math.isnan(value) for value in drills.values()
    )


def test_missing_column_across_whole_table_defaults_to_zero():
    frame = pd.DataFrame([product_row(), product_row(product_id="2")]).drop(
        columns=["Availabile Stock"]
    )

    stats = build_category_stats(normalize_products(frame))

    assert stats.loc[0, "stock_units"] == 0
    assert stats.loc[0, "stock_value"] == 0


@pytest.mark.parametrize(
    "raw, expected",
    [
        (None, 0.0),
        (float("nan"), 0.0),
        ("", 0.0),
        ("   ", 0.0),
        ("-", 0.0),
        (False, 0.0),
        ("abc", 0.0),
        ("1,234", 1234.0),
        ("12.5", 12.5),
        ("1e200", 1e200),
        (float("inf"), 0.0),
        ("-inf", 0.0),
        (7, 7.0),
        (0, 0.0),
    ],
)
def test_clean_numeric_defaults_absent_unparseable_and_infinite_values(raw, expected):
    cleaned = clean_numeric(pd.Series([raw], dtype=object))

    assert cleaned.dtype == float
    assert cleaned.iloc[0] == expected


def test_true_zero_and_blank_measure_are_indistinguishable():
    zero = normalize_record(product_row(units_last=0))
    blank = normalize_record(product_row(units_last=None))

    assert zero["units_last_year"] == blank["units_last_year"] == 0


@pytest.mark.parametrize(
    "brand, expected",
    [
        ("  Makita  ", "Makita"),
        ("   ", "Unknown"),
        ("", "Unknown"),
        (None, "Unknown"),
        (1234, "Unknown"),
    ],
)
def test_brand_is_trimmed_or_defaulted(brand, expected):
    assert normalize_record(product_row(brand=brand))["brand"] == expected


@pytest.mark.parametrize("category", ["", None, float("nan"), 0, "0"])
def test_empty_category_becomes_misc(category):
    assert normalize_record(product_row(category=category))["category"] == "Misc"


def test_number_like_category_text_is_kept_verbatim():
    assert normalize_record(product_row(category="10"))["category"] == "10"


def test_zero_status_text_is_not_counted():
    assert normalize_record(product_row(status="0"))["best_seller_status"] is None


def test_record_headers_are_matched_like_table_headers():
    record = normalize_record(
        {" Product ID ": "7", "Parent  Category": "Saws", "Total Sales this Year": "3"}
    )

    assert record["product_id"] == "7"
    assert record["category"] == "Saws"
    assert record["units_this_year"] == 3
    assert record["brand"] == "Unknown"
    assert record["selling_price_ex_vat"] == 0


def test_category_totals_match_input_sums_regardless_of_order():
    rows = [
        product_row(product_id=str(i), category=cat, units_this=units)
        for i, (cat, units) in enumerate(
            [("Drills", 4), ("Saws", 7), ("Drills", 9), ("Misc", 1), ("Saws", 2)],
            start=1,
        )
    ]
    rows.append(product_row(product_id="", category="Drills", units_this=100))

    forward = stats_by_category(rows)
    backward = stats_by_category(list(reversed(rows)))

    assert forward["Drills"]["units_this_year"] == 13
    assert forward["Saws"]["units_this_year"] == 9
    assert forward["Misc"]["units_this_year"] == 1
    assert {cat: row["product_count"] for cat, row in forward.items()} == {
        "Drills": 2,
        "Misc": 1,
        "Saws": 2,
    }
    for category, row in forward.items():
        assert backward[category]["category"] == category
        for key, value in row.items():
            if key != "category":
                assert backward[category][key] == pytest.approx(value)


def test_categories_come_out_sorted():
    stats = build_category_stats(
        normalize_products(
            pd.DataFrame(
                [
                    product_row(product_id="1", category="Saws"),
                    product_row(product_id="2", category="Batteries"),
                    product_row(product_id="3", category="Drills"),
                ]
            )
        )
    )

    assert list(stats["category"]) == ["Batteries", "Drills", "Saws"]


def test_empty_input_produces_empty_stats():
    products = normalize_products(pd.DataFrame([product_row(product_id="")]))

    assert products.empty
    assert build_category_stats(products).empty
    assert count_best_seller_status(products).empty


def test_status_counter_keeps_unexpected_labels_and_skips_blanks():
    rows = [
        product_row(product_id="1", status="A"),
        product_row(product_id="2", status="A"),
        product_row(product_id="3", status="A+"),
        product_row(product_id="4", status="Z"),
        product_row(product_id="5", status=""),
        product_row(product_id="6", status=None),
    ]

    counts = count_best_seller_status(normalize_products(pd.DataFrame(rows)))

    assert dict(zip(counts["best_seller_status"], counts["count"])) == {
        "A": 2,
        "A+": 1,
        "Z": 1,
    }
