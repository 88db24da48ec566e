#!/usr/bin/env python3
"""Convert a product sales/stock export into category-level dashboard datasets."""

from __future__ import annotations

import argparse
import hashlib
import json
import re
import shutil
import sys
from collections.abc import Mapping
from datetime import datetime
from pathlib import Path

import pandas as pd

from build_category_sales_dashboard import generate_dashboard_outputs


# "Availabile" is spelled the way the export writes it.
COLUMN_RENAME_MAP = {
    "Product ID": "product_id",
    "Brand": "brand",
    "Parent Category": "category",
    "Total Sales this Year": "units_this_year",
    "Total Sales Last Year": "units_last_year",
    "Selling Price ex VAT": "selling_price_ex_vat",
    "Cost Price ex VAT": "cost_price_ex_vat",
    "Availabile Stock": "available_stock",
    "Best Seller Status": "best_seller_status",
}

MEASURE_COLUMNS = [
    "units_this_year",
    "units_last_year",
    "selling_price_ex_vat",
    "cost_price_ex_vat",
    "available_stock",
]

PRODUCT_COLUMNS = [
    "product_id",
    "brand",
    "category",
    *MEASURE_COLUMNS,
    "best_seller_status",
]

CATEGORY_STAT_COLUMNS = [
    "product_count",
    "units_this_year",
    "units_last_year",
    "revenue_this_year",
    "revenue_last_year",
    "stock_units",
    "stock_value",
    "profit_sum",
    "revenue_for_profit",
]

DEFAULT_BRAND = "Unknown"
DEFAULT_CATEGORY = "Misc"

# Label columns are read as text so codes like 10 do not turn into 10.0.
TEXT_HEADERS = ["Brand", "Parent Category", "Best Seller Status"]

SUPPORTED_SUFFIXES = {".csv", ".xlsx", ".xls"}


def normalize_header(header: object) -> str:
    text = str(header or "").strip()
    return re.sub(r"\s+", " ", text)


def _is_missing(value: object) -> bool:
    if value is None:
        return True
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def is_present(value: object) -> bool:
    """Truthiness of a raw cell, with NaN/NA counted as absent."""
    if _is_missing(value):
        return False
    if isinstance(value, str):
        return value != ""
    return bool(value)


def _is_zero_text(value: str) -> bool:
    try:
        return float(value) == 0
    except ValueError:
        return False


def is_present_label(value: object) -> bool:
    """Like :func:`is_present`, but a label read as text "0" is also absent."""
    if isinstance(value, str) and _is_zero_text(value):
        return False
    return is_present(value)


def clean_numeric(series: pd.Series) -> pd.Series:
    """Numeric measure column; blank, unparseable and non-finite cells become 0."""
    text = series.astype("string").str.strip().str.replace(",", "", regex=False)
    text = text.replace({"": pd.NA, "-": pd.NA, "nan": pd.NA})
    numbers = pd.to_numeric(text, errors="coerce").astype("Float64")
    numbers = numbers.replace([float("inf"), float("-inf")], pd.NA)
    return numbers.fillna(0).astype(float)


def clean_brand(value: object) -> str:
    if isinstance(value, str):
        return value.strip() or DEFAULT_BRAND
    return DEFAULT_BRAND


def clean_category(value: object) -> str:
    if not is_present_label(value):
        return DEFAULT_CATEGORY
    return str(value)


def clean_status(value: object) -> str | None:
    if not is_present_label(value):
        return None
    return str(value)


def normalize_products(frame: pd.DataFrame) -> pd.DataFrame:
    """Normalize a parsed export table into typed, defaulted product rows.

    Rows without a usable ``Product ID`` are dropped. Measures that are
    missing or not numbers become 0, so a real zero and a blank cell end up
    the same. Columns absent from the export count as blank.
    """
    rename_map = {}
    for col in frame.columns:
        normalized = normalize_header(col)
        if normalized in COLUMN_RENAME_MAP:
            rename_map[col] = COLUMN_RENAME_MAP[normalized]

    out = frame[list(rename_map)].rename(columns=rename_map).copy()
    for column in PRODUCT_COLUMNS:
        if column not in out.columns:
            out[column] = None

    keep = out["product_id"].map(is_present).astype(bool)
    out = out[keep].copy()

    out["brand"] = out["brand"].map(clean_brand).astype(object)
    out["category"] = out["category"].map(clean_category).astype(object)
    out["best_seller_status"] = out["best_seller_status"].map(clean_status).astype(object)
    for column in MEASURE_COLUMNS:
        out[column] = clean_numeric(out[column])

    return out[PRODUCT_COLUMNS].reset_index(drop=True)


def normalize_record(row: Mapping) -> dict | None:
    """Normalize one raw row keyed by export headers; ``None`` means discard."""
    products = normalize_products(pd.DataFrame([dict(row)]))
    if products.empty:
        return None
    return products.to_dict(orient="records")[0]


def build_category_stats(products: pd.DataFrame) -> pd.DataFrame:
    """Fold normalized products into one accumulator row per category."""
    if products.empty:
        return pd.DataFrame(columns=["category", *CATEGORY_STAT_COLUMNS])

    price = products["selling_price_ex_vat"]
    cost = products["cost_price_ex_vat"]

    contributions = pd.DataFrame(
        {
            "category": products["category"],
            "product_count": 1,
            "units_this_year": products["units_this_year"],
            "units_last_year": products["units_last_year"],
            "revenue_this_year": price * products["units_this_year"],
            "revenue_last_year": price * products["units_last_year"],
            "stock_units": products["available_stock"],
            "stock_value": cost * products["available_stock"],
            "profit_sum": (price - cost) * products["units_last_year"],
        }
    )
    contributions["revenue_for_profit"] = contributions["revenue_last_year"]

    grouped = (
        contributions.groupby("category", sort=True)[CATEGORY_STAT_COLUMNS]
        .sum()
        .reset_index()
    )
    grouped["product_count"] = grouped["product_count"].astype(int)
    return grouped


def count_best_seller_status(products: pd.DataFrame) -> pd.DataFrame:
    """Count products per best seller label, keeping every label seen."""
    statuses = products["best_seller_status"].dropna()
    if statuses.empty:
        return pd.DataFrame(columns=["best_seller_status", "count"])

    counts = (
        statuses.astype(str)
        .value_counts(sort=False)
        .rename_axis("best_seller_status")
        .reset_index(name="count")
    )
    return counts.sort_values("best_seller_status").reset_index(drop=True)


def load_product_table(path: Path) -> pd.DataFrame:
    if not path.exists():
        raise FileNotFoundError(f"Input not found: {path}")

    suffix = path.suffix.lower()
    if suffix not in SUPPORTED_SUFFIXES:
        raise ValueError(
            f"Unsupported input type '{path.suffix}'; expected one of "
            f"{', '.join(sorted(SUPPORTED_SUFFIXES))}"
        )
    # Only blank cells are missing; labels like "NA" stay text.
    if suffix == ".csv":
        header = pd.read_csv(path, nrows=0).columns
        return pd.read_csv(
            path,
            keep_default_na=False,
            na_values=[""],
            dtype=_text_dtypes(header),
        )
    header = pd.read_excel(path, sheet_name=0, nrows=0).columns
    return pd.read_excel(
        path,
        sheet_name=0,
        keep_default_na=False,
        na_values=[""],
        dtype=_text_dtypes(header),
    )


def _text_dtypes(columns: pd.Index) -> dict:
    return {col: str for col in columns if normalize_header(col) in TEXT_HEADERS}


def file_sha256(path: Path, chunk_size: int = 1024 * 1024) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as f:
        while True:
            chunk = f.read(chunk_size)
            if not chunk:
                break
            digest.update(chunk)
    return digest.hexdigest()


def source_fingerprint(path: Path) -> dict:
    stat = path.stat()
    return {
        "file_name": path.name,
        "size": stat.st_size,
        "mtime_ns": stat.st_mtime_ns,
        "sha256": file_sha256(path),
    }


def build_latest_outputs(input_path: Path, processed_root: Path) -> dict:
    raw = load_product_table(input_path)
    products = normalize_products(raw)
    category_stats = build_category_stats(products)
    status_counts = count_best_seller_status(products)

    latest_root = processed_root / "latest"
    if latest_root.exists():
        shutil.rmtree(latest_root)

    facts_dir = latest_root / "facts"
    marts_dir = latest_root / "marts"
    for path in [facts_dir, marts_dir]:
        path.mkdir(parents=True, exist_ok=True)

    fact_file = facts_dir / "products_normalized.csv"
    products.to_csv(fact_file, index=False, encoding="utf-8")

    category_file = marts_dir / "category_stats.csv"
    category_stats.to_csv(category_file, index=False, encoding="utf-8")

    status_file = marts_dir / "status_counts.csv"
    status_counts.to_csv(status_file, index=False, encoding="utf-8")

    dashboard_manifest = generate_dashboard_outputs(
        latest_root=latest_root,
        output_dir=latest_root / "dashboard",
    )

    manifest = {
        "generated_at": datetime.now().isoformat(timespec="seconds"),
        "source_file": str(input_path),
        "source_fingerprint": source_fingerprint(input_path),
        "rows": {
            "input": int(len(raw)),
            "products": int(len(products)),
            "discarded": int(len(raw) - len(products)),
            "categories": int(len(category_stats)),
        },
        "fact_file": str(fact_file),
        "category_stats_file": str(category_file),
        "status_counts_file": str(status_file),
        "dashboard_outputs": dashboard_manifest["outputs"],
    }

    manifest_file = latest_root / "manifest.json"
    manifest_file.write_text(
        json.dumps(manifest, ensure_ascii=False, indent=2),
        encoding="utf-8",
    )

    return {
        "latest_root": str(latest_root),
        "manifest_file": str(manifest_file),
        "fact_file": str(fact_file),
        "category_stats_file": str(category_file),
        "status_counts_file": str(status_file),
        "dashboard_outputs": dashboard_manifest["outputs"],
        "manifest": manifest,
    }


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    root = Path(__file__).resolve().parents[1]
    parser = argparse.ArgumentParser(
        description="Aggregate a product sales/stock export into category dashboard datasets."
    )
    parser.add_argument(
        "--input",
        type=Path,
        default=root / "Data" / "MExport.csv",
        help="Path to source csv/xlsx export.",
    )
    parser.add_argument(
        "--processed-root",
        type=Path,
        default=root / "Data" / "processed",
        help="Root directory for processed outputs.",
    )
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Suppress generated-file logs.",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    try:
        generated = build_latest_outputs(args.input, args.processed_root)
    except (OSError, ValueError, pd.errors.ParserError, pd.errors.EmptyDataError) as exc:
        print(f"Error loading or parsing data: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc

    if args.quiet:
        return

    rows = generated["manifest"]["rows"]
    print("Generated latest category sales datasets:")
    print(
        f"- products: {rows['products']} kept, {rows['discarded']} discarded, "
        f"{rows['categories']} categories"
    )
    print(f"- {generated['fact_file']}")
    print(f"- {generated['category_stats_file']}")
    print(f"- {generated['status_counts_file']}")
    print(f"- {generated['manifest_file']}")
    for key, path in generated["dashboard_outputs"].items():
        print(f"- {key}: {path}")


if __name__ == "__main__":
    main()
