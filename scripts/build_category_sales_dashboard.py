#!/usr/bin/env python3
"""Build the category sales/stock dashboard from processed marts."""

from __future__ import annotations

import argparse
import json
import math
import sys
from datetime import datetime
from pathlib import Path

import pandas as pd


STATUS_LABELS = ["A+", "A", "B", "C", "D", "E"]

VIEW_MODES = ["quantity", "revenue"]
DEFAULT_MODE = "quantity"

VIEW_TEXT = {
    "quantity": {
        "sales_axis": "Units Sold",
        "stock_axis": "Units in Stock",
        "stock_title": "Stock by Category (Available Stock Units)",
    },
    "revenue": {
        "sales_axis": "Revenue (£)",
        "stock_axis": "Stock Value (£)",
        "stock_title": "Stock by Category (Inventory Value)",
    },
}

CHART_THEME = {
    "font_color": "#d9dbdf",
    "font_family": "Arial",
    "title_color": "#ece6d5",
    "title_font": {"size": 14, "weight": "bold"},
    "page_background": "#1f2329",
    "panel_background": "#2a2f36",
    "last_year": "#d9dbdf",
    "this_year": "#ff8b00",
    "stock": "#00909e",
    "profit": "#ff8b00",
    "status": {
        "A+": "#4caf50",
        "A": "#8bc34a",
        "B": "#cddc39",
        "C": "#ffeb3b",
        "D": "#ff9800",
        "E": "#f44336",
    },
}


def round_half_up(value: float, digits: int = 0) -> float | int | None:
    """Round with .5 going towards +infinity, the way the dashboard always has.

    Non-finite values have no chart value and come back as ``None``.
    """
    if not math.isfinite(value):
        return None
    scale = 10**digits
    scaled = value * scale
    if not math.isfinite(scaled):
        return value
    rounded = math.floor(scaled + 0.5)
    if digits == 0:
        return int(rounded)
    return rounded / scale


def _as_number(value: object) -> int | float | None:
    number = float(value)
    if not math.isfinite(number):
        return None
    if number.is_integer():
        return int(number)
    return number


def _finite_or_none(value: float | None) -> float | None:
    if value is None or not math.isfinite(value):
        return None
    return value


def safe_pct(numerator: float, denominator: float) -> float | None:
    if denominator == 0:
        return None
    return numerator / denominator


def build_chart_series(
    category_stats: pd.DataFrame, status_counts: pd.DataFrame
) -> dict:
    """Project category aggregates into parallel, category-sorted arrays.

    Margins are only reported for categories with last-year revenue. Status
    counts follow ``STATUS_LABELS``; labels outside it are counted upstream
    but never surfaced here.
    """
    stats = {
        str(row["category"]): row
        for row in category_stats.to_dict(orient="records")
    }
    categories = sorted(stats)

    series: dict[str, list] = {
        "categories": categories,
        "units_last_year": [],
        "units_this_year": [],
        "revenue_last_year": [],
        "revenue_this_year": [],
        "stock_units": [],
        "stock_value": [],
        "profit_margin_categories": [],
        "profit_margins": [],
    }

    for category in categories:
        row = stats[category]
        series["units_last_year"].append(_as_number(row["units_last_year"]))
        series["units_this_year"].append(_as_number(row["units_this_year"]))
        series["revenue_last_year"].append(round_half_up(row["revenue_last_year"]))
        series["revenue_this_year"].append(round_half_up(row["revenue_this_year"]))
        series["stock_units"].append(_as_number(row["stock_units"]))
        series["stock_value"].append(round_half_up(row["stock_value"]))

        revenue_for_profit = float(row["revenue_for_profit"])
        if revenue_for_profit > 0:
            margin = float(row["profit_sum"]) / revenue_for_profit * 100
            series["profit_margin_categories"].append(category)
            series["profit_margins"].append(round_half_up(margin, 1))

    observed = {
        str(row["best_seller_status"]): int(row["count"])
        for row in status_counts.to_dict(orient="records")
    }
    series["status_labels"] = list(STATUS_LABELS)
    series["status_counts"] = [observed.get(label, 0) for label in STATUS_LABELS]
    return series


def project_view(series: dict, mode: str = DEFAULT_MODE) -> dict:
    """Pick the sales and stock arrays shown for a display mode.

    Nothing is recomputed; switching modes back and forth returns the same
    arrays every time.
    """
    if mode not in VIEW_MODES:
        raise ValueError(f"Unknown view mode '{mode}'; expected one of {VIEW_MODES}")

    text = VIEW_TEXT[mode]
    if mode == "revenue":
        sales = [series["revenue_last_year"], series["revenue_this_year"]]
        stock = [series["stock_value"]]
    else:
        sales = [series["units_last_year"], series["units_this_year"]]
        stock = [series["stock_units"]]

    return {
        "mode": mode,
        "sales": {
            "labels": list(series["categories"]),
            "series": [list(values) for values in sales],
            "axis_title": text["sales_axis"],
        },
        "stock": {
            "labels": list(series["categories"]),
            "series": [list(values) for values in stock],
            "axis_title": text["stock_axis"],
            "title": text["stock_title"],
        },
    }


def build_chart_payloads(series: dict, mode: str = DEFAULT_MODE) -> dict:
    view = project_view(series, mode)
    return {
        "sales": {
            "labels": view["sales"]["labels"],
            "series": view["sales"]["series"],
        },
        "stock": {
            "labels": view["stock"]["labels"],
            "series": view["stock"]["series"][0],
        },
        "profit": {
            "labels": list(series["profit_margin_categories"]),
            "series": list(series["profit_margins"]),
        },
        "bestSeller": {
            "labels": list(series["status_labels"]),
            "series": list(series["status_counts"]),
        },
    }


def _chart_title(text: str, theme: dict) -> dict:
    return {
        "display": True,
        "text": text,
        "font": dict(theme["title_font"]),
        "color": theme["title_color"],
    }


def _axis(title: str, **extra) -> dict:
    return {"beginAtZero": True, "title": {"display": True, "text": title}, **extra}


def build_chart_configs(
    series: dict, theme: dict | None = None, mode: str = DEFAULT_MODE
) -> dict:
    """Chart.js configs for the four charts; the theme goes into each one."""
    theme = theme or CHART_THEME
    payloads = build_chart_payloads(series, mode)
    view = project_view(series, mode)
    base_options = {"color": theme["font_color"], "font": {"family": theme["font_family"]}}

    sales = {
        "type": "bar",
        "data": {
            "labels": payloads["sales"]["labels"],
            "datasets": [
                {
                    "label": "Last Year",
                    "data": payloads["sales"]["series"][0],
                    "backgroundColor": theme["last_year"],
                },
                {
                    "label": "This Year",
                    "data": payloads["sales"]["series"][1],
                    "backgroundColor": theme["this_year"],
                },
            ],
        },
        "options": {
            **base_options,
            "indexAxis": "y",
            "plugins": {
                "title": _chart_title("Sales by Category: Last Year vs This Year", theme),
                "legend": {"position": "top"},
            },
            "scales": {
                "x": _axis(view["sales"]["axis_title"]),
                "y": {"beginAtZero": True},
            },
        },
    }

    stock = {
        "type": "bar",
        "data": {
            "labels": payloads["stock"]["labels"],
            "datasets": [
                {
                    "label": "Available Stock",
                    "data": payloads["stock"]["series"],
                    "backgroundColor": theme["stock"],
                }
            ],
        },
        "options": {
            **base_options,
            "indexAxis": "y",
            "plugins": {
                "title": _chart_title(view["stock"]["title"], theme),
                "legend": {"display": False},
            },
            "scales": {
                "x": _axis(view["stock"]["axis_title"]),
                "y": {"beginAtZero": True},
            },
        },
    }

    profit = {
        "type": "bar",
        "data": {
            "labels": payloads["profit"]["labels"],
            "datasets": [
                {
                    "label": "Profit Margin",
                    "data": payloads["profit"]["series"],
                    "backgroundColor": theme["profit"],
                }
            ],
        },
        "options": {
            **base_options,
            "indexAxis": "y",
            "plugins": {
                "title": _chart_title("Average Profit Margin by Category", theme),
                "legend": {"display": False},
            },
            "scales": {
                "x": _axis("Profit Margin (%)", max=100),
                "y": {"beginAtZero": True},
            },
        },
    }

    best_seller = {
        "type": "bar",
        "data": {
            "labels": payloads["bestSeller"]["labels"],
            "datasets": [
                {
                    "label": "Number of Products",
                    "data": payloads["bestSeller"]["series"],
                    "backgroundColor": [
                        theme["status"].get(label, theme["font_color"])
                        for label in payloads["bestSeller"]["labels"]
                    ],
                }
            ],
        },
        "options": {
            **base_options,
            "plugins": {
                "title": _chart_title("Products by Best Seller Rating", theme),
                "legend": {"display": False},
            },
            "scales": {
                "x": {"title": {"display": True, "text": "Best Seller Status"}},
                "y": _axis("Number of Products"),
            },
        },
    }

    return {"sales": sales, "stock": stock, "profit": profit, "bestSeller": best_seller}


def format_metric(value: float | int | None, as_pct: bool = False) -> str:
    if value is None or pd.isna(value):
        return "-"
    if as_pct:
        return f"{value * 100:.1f}%"
    return f"{value:,.0f}"


def summarize_totals(category_stats: pd.DataFrame) -> dict:
    totals = {
        column: float(category_stats[column].sum()) if not category_stats.empty else 0.0
        for column in [
            "units_this_year",
            "units_last_year",
            "revenue_this_year",
            "revenue_last_year",
            "stock_units",
            "stock_value",
            "profit_sum",
            "revenue_for_profit",
        ]
    }
    totals["product_count"] = (
        int(category_stats["product_count"].sum()) if not category_stats.empty else 0
    )
    totals["category_count"] = int(len(category_stats))
    totals["profit_margin"] = safe_pct(totals["profit_sum"], totals["revenue_for_profit"])
    totals["yoy_units_pct"] = safe_pct(
        totals["units_this_year"] - totals["units_last_year"], totals["units_last_year"]
    )
    totals["yoy_revenue_pct"] = safe_pct(
        totals["revenue_this_year"] - totals["revenue_last_year"],
        totals["revenue_last_year"],
    )
    # Overflowing sums have no printable value.
    return {
        key: _finite_or_none(value) if isinstance(value, float) else value
        for key, value in totals.items()
    }


def _series_table(series: dict) -> pd.DataFrame:
    margins = dict(zip(series["profit_margin_categories"], series["profit_margins"]))
    return pd.DataFrame(
        {
            "category": series["categories"],
            "units_last_year": series["units_last_year"],
            "units_this_year": series["units_this_year"],
            "revenue_last_year": series["revenue_last_year"],
            "revenue_this_year": series["revenue_this_year"],
            "stock_units": series["stock_units"],
            "stock_value": series["stock_value"],
            "profit_margin_pct": [margins.get(cat) for cat in series["categories"]],
        }
    )


def write_markdown_brief(
    path: Path,
    generated_at: str,
    totals: dict,
    series: dict,
) -> None:
    lines = [
        "# Category Sales & Stock Brief",
        "",
        f"- Generated at: `{generated_at}`",
        f"- Products: `{totals['product_count']}` across `{totals['category_count']}` categories",
        f"- Units this year: `{format_metric(totals['units_this_year'])}` "
        f"(YoY {format_metric(totals['yoy_units_pct'], as_pct=True)})",
        f"- Revenue this year: `£{format_metric(totals['revenue_this_year'])}` "
        f"(YoY {format_metric(totals['yoy_revenue_pct'], as_pct=True)})",
        f"- Stock value at cost: `£{format_metric(totals['stock_value'])}`",
        f"- Last-year profit margin: `{format_metric(totals['profit_margin'], as_pct=True)}`",
        "",
        "## Categories",
        "",
        _series_table(series).to_csv(index=False),
        "",
        "## Best Seller Rating",
        "",
    ]
    for label, count in zip(series["status_labels"], series["status_counts"]):
        lines.append(f"- {label}: {count}")
    lines.append("")

    path.write_text("\n".join(lines), encoding="utf-8")


def write_excel_workbook(
    path: Path, category_stats: pd.DataFrame, series: dict, totals: dict
) -> None:
    with pd.ExcelWriter(path, engine="openpyxl") as writer:
        pd.DataFrame([totals]).to_excel(writer, sheet_name="Totals", index=False)
        category_stats.to_excel(writer, sheet_name="Categories", index=False)
        _series_table(series).to_excel(writer, sheet_name="Chart Series", index=False)
        pd.DataFrame(
            {
                "category": series["profit_margin_categories"],
                "profit_margin_pct": series["profit_margins"],
            }
        ).to_excel(writer, sheet_name="Profit Margin", index=False)
        pd.DataFrame(
            {
                "best_seller_status": series["status_labels"],
                "count": series["status_counts"],
            }
        ).to_excel(writer, sheet_name="Best Seller", index=False)


def write_html_dashboard(
    path: Path,
    generated_at: str,
    series: dict,
    theme: dict | None = None,
    mode: str = DEFAULT_MODE,
) -> None:
    theme = theme or CHART_THEME
    dataset = {
        "initialMode": mode,
        "charts": build_chart_configs(series, theme, mode),
        "views": {view_mode: project_view(series, view_mode) for view_mode in VIEW_MODES},
    }
    dataset_json = json.dumps(dataset, ensure_ascii=False, allow_nan=False)
    dataset_json = dataset_json.replace("</", "<\\/")

    template = """<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8" />
  <meta name="viewport" content="width=device-width, initial-scale=1" />
  <title>Category Sales &amp; Stock Dashboard</title>
  <script src="https://cdn.jsdelivr.net/npm/chart.js"></script>
  <style>
    * { box-sizing: border-box; }
    body {
      margin: 0;
      padding: 24px;
      font-family: __FONT_FAMILY__, sans-serif;
      color: __FONT_COLOR__;
      background: __PAGE_BG__;
    }
    h1 { margin: 0 0 6px; font-size: 26px; color: __TITLE_COLOR__; }
    p.meta { margin: 0 0 18px; opacity: 0.75; }
    .control-row { display: flex; gap: 16px; margin-bottom: 16px; }
    .grid {
      display: grid;
      grid-template-columns: repeat(auto-fit, minmax(420px, 1fr));
      gap: 16px;
    }
    .panel {
      background: __PANEL_BG__;
      border-radius: 12px;
      padding: 14px;
    }
  </style>
</head>
<body>
  <h1>Category Sales &amp; Stock Dashboard</h1>
  <p class="meta">Generated at __GENERATED_AT__</p>
  <div class="control-row">
    <label><input type="radio" name="metric" id="metricQty" value="quantity" /> Quantity</label>
    <label><input type="radio" name="metric" id="metricRev" value="revenue" /> Revenue</label>
  </div>
  <div class="grid">
    <section class="panel"><canvas id="salesChart"></canvas></section>
    <section class="panel"><canvas id="stockChart"></canvas></section>
    <section class="panel"><canvas id="profitChart"></canvas></section>
    <section class="panel"><canvas id="bestChart"></canvas></section>
  </div>
  <script>
    const dataset = __DATASET_JSON__;
    const canvasIds = {
      sales: "salesChart",
      stock: "stockChart",
      profit: "profitChart",
      bestSeller: "bestChart",
    };
    const tickFormats = {
      sales: (value) => Number(value).toLocaleString(),
      stock: (value) => Number(value).toLocaleString(),
      profit: (value) => `${value}%`,
    };
    const charts = {};

    Object.entries(dataset.charts).forEach(([name, config]) => {
      const canvas = document.getElementById(canvasIds[name]);
      if (!canvas || typeof Chart === "undefined") return;
      if (tickFormats[name]) {
        config.options.scales.x.ticks = { callback: tickFormats[name] };
      }
      charts[name] = new Chart(canvas, config);
    });

    function applyView(mode) {
      const view = dataset.views[mode];
      if (!view) return;
      if (charts.sales) {
        charts.sales.data.labels = view.sales.labels;
        view.sales.series.forEach((values, index) => {
          charts.sales.data.datasets[index].data = values;
        });
        charts.sales.options.scales.x.title.text = view.sales.axis_title;
        charts.sales.update();
      }
      if (charts.stock) {
        charts.stock.data.labels = view.stock.labels;
        charts.stock.data.datasets[0].data = view.stock.series[0];
        charts.stock.options.scales.x.title.text = view.stock.axis_title;
        charts.stock.options.plugins.title.text = view.stock.title;
        charts.stock.update();
      }
    }

    document.querySelectorAll('input[name="metric"]').forEach((radio) => {
      radio.checked = radio.value === dataset.initialMode;
      radio.addEventListener("change", () => {
        if (radio.checked) applyView(radio.value);
      });
    });
  </script>
</body>
</html>
"""

    html = (
        template.replace("__GENERATED_AT__", generated_at)
        .replace("__FONT_FAMILY__", theme["font_family"])
        .replace("__FONT_COLOR__", theme["font_color"])
        .replace("__TITLE_COLOR__", theme["title_color"])
        .replace("__PAGE_BG__", theme["page_background"])
        .replace("__PANEL_BG__", theme["panel_background"])
        .replace("__DATASET_JSON__", dataset_json)
    )
    path.write_text(html, encoding="utf-8")


def load_marts(marts_dir: Path) -> tuple[pd.DataFrame, pd.DataFrame]:
    # Category and status labels such as "NA" must stay text.
    category_stats = pd.read_csv(
        marts_dir / "category_stats.csv",
        dtype={"category": str},
        keep_default_na=False,
    )
    status_counts = pd.read_csv(
        marts_dir / "status_counts.csv",
        dtype={"best_seller_status": str},
        keep_default_na=False,
    )
    return category_stats, status_counts


def generate_dashboard_outputs(
    latest_root: Path, output_dir: Path, mode: str = DEFAULT_MODE
) -> dict:
    if mode not in VIEW_MODES:
        raise ValueError(f"Unknown view mode '{mode}'; expected one of {VIEW_MODES}")

    marts_dir = latest_root / "marts"
    output_dir.mkdir(parents=True, exist_ok=True)

    category_stats, status_counts = load_marts(marts_dir)
    series = build_chart_series(category_stats, status_counts)
    totals = summarize_totals(category_stats)
    generated_at = datetime.now().isoformat(timespec="seconds")

    series_file = output_dir / "chart_series.csv"
    _series_table(series).to_csv(series_file, index=False, encoding="utf-8")

    payload_file = output_dir / "chart_payloads.json"
    payload_file.write_text(
        json.dumps(
            {view_mode: build_chart_payloads(series, view_mode) for view_mode in VIEW_MODES},
            ensure_ascii=False,
            indent=2,
            allow_nan=False,
        ),
        encoding="utf-8",
    )

    excel_file = output_dir / "category_sales_dashboard.xlsx"
    write_excel_workbook(excel_file, category_stats, series, totals)

    markdown_file = output_dir / "category_sales_brief.md"
    write_markdown_brief(
        path=markdown_file,
        generated_at=generated_at,
        totals=totals,
        series=series,
    )

    html_file = output_dir / "category_sales_dashboard.html"
    write_html_dashboard(
        path=html_file,
        generated_at=generated_at,
        series=series,
        theme=CHART_THEME,
        mode=mode,
    )

    manifest = {
        "generated_at": generated_at,
        "source_latest_root": str(latest_root),
        "initial_mode": mode,
        "outputs": {
            "series_file": str(series_file),
            "payload_file": str(payload_file),
            "excel_file": str(excel_file),
            "markdown_file": str(markdown_file),
            "html_file": str(html_file),
        },
        "totals": totals,
    }

    manifest_file = output_dir / "dashboard_manifest.json"
    manifest_file.write_text(
        json.dumps(manifest, ensure_ascii=False, indent=2, allow_nan=False), encoding="utf-8"
    )
    manifest["outputs"]["manifest_file"] = str(manifest_file)
    return manifest


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    root = Path(__file__).resolve().parents[1]
    parser = argparse.ArgumentParser(
        description="Generate the category sales/stock dashboard from processed marts."
    )
    parser.add_argument(
        "--latest-root",
        type=Path,
        default=root / "Data" / "processed" / "latest",
        help="Path to processed latest directory.",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=root / "Data" / "processed" / "latest" / "dashboard",
        help="Directory for dashboard outputs.",
    )
    parser.add_argument(
        "--mode",
        choices=VIEW_MODES,
        default=DEFAULT_MODE,
        help="Initial quantity/revenue view of the HTML dashboard.",
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
        manifest = generate_dashboard_outputs(
            latest_root=args.latest_root,
            output_dir=args.output_dir,
            mode=args.mode,
        )
    except (OSError, ValueError, pd.errors.ParserError, pd.errors.EmptyDataError) as exc:
        print(f"Error loading or parsing data: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc

    if args.quiet:
        return

    print("Generated category sales dashboard outputs:")
    for key, path in manifest["outputs"].items():
        print(f"- {key}: {path}")


if __name__ == "__main__":
    main()
