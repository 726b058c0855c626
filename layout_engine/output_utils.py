#!/usr/bin/env python3
"""
Output utilities for the layout optimizer.

Common functions for formatting layouts, metric breakdowns, rankings and
comparisons as human-readable text or CSV.
"""

import csv
import io
from typing import Dict, List, Optional, Sequence, Tuple

from layout_engine.geometry import Geometry
from layout_engine.layout import Layout
from layout_engine.metrics import METRIC_REGISTRY, MetricBreakdown
from layout_engine.store import LayoutComparison


def format_layout(layout: Layout, geometry: Geometry) -> str:
    """
    Format a layout as a keyboard grid, with a gap between the hands.

    Args:
        layout: Layout to display
        geometry: Geometry the layout is defined on

    Returns:
        Multi-line string such as "q w e r t  y u i o p"
    """
    lines = []
    for row in geometry.rows():
        left = [layout.char_at(pos.index) for pos in row if pos.hand == 'L']
        right = [layout.char_at(pos.index) for pos in row if pos.hand == 'R']
        lines.append(f"{' '.join(left)}  {' '.join(right)}".rstrip())
    return '\n'.join(lines)


def _metric_label(name: str) -> str:
    return name.replace('_', ' ').capitalize()


def format_breakdown(breakdown: MetricBreakdown,
                     precision: int = 6,
                     show_raw: bool = True) -> str:
    """
    Format a metric breakdown as an aligned table.

    Args:
        breakdown: Breakdown to format
        precision: Decimal places
        show_raw: Include the raw (unweighted) column

    Returns:
        Formatted multi-line string
    """
    lines = []
    header = f"  {'Metric':<22}"
    if show_raw:
        header += f" {'Raw':>12}"
    header += f" {'Weighted':>12}"
    lines.append(header)

    for name, weighted in breakdown.weighted.items():
        line = f"  {_metric_label(name):<22}"
        if show_raw:
            line += f" {breakdown.raw[name]:12.{precision}f}"
        line += f" {weighted:12.{precision}f}"
        lines.append(line)

    total = f"  {'Total score':<22}"
    if show_raw:
        total += f" {'':>12}"
    total += f" {breakdown.total:12.{precision}f}"
    lines.append(total)
    return '\n'.join(lines)


def format_usage(usage: Dict[str, float], title: str) -> str:
    """Format hand or finger usage shares as percentages on one line."""
    parts = [f"{key}: {100 * value:5.2f}%" for key, value in usage.items()]
    return f"{title}: " + ", ".join(parts)


def format_layout_details(layout: Layout,
                          geometry: Geometry,
                          breakdown: MetricBreakdown,
                          hand: Optional[Dict[str, float]] = None,
                          fingers: Optional[Dict[str, float]] = None,
                          precision: int = 6) -> str:
    """
    Format everything the 'layout' command shows about one layout.

    Args:
        layout: Layout to show
        geometry: Geometry the layout is defined on
        breakdown: Its metric breakdown
        hand: Optional hand usage shares
        fingers: Optional finger usage shares
        precision: Decimal places

    Returns:
        Formatted multi-line string
    """
    lines = []
    if layout.name:
        lines.append(layout.name)
    lines.append(format_layout(layout, geometry))
    lines.append("")
    if hand:
        lines.append(format_usage(hand, "Hand usage"))
    if fingers:
        lines.append(format_usage(fingers, "Finger usage"))
    if hand or fingers:
        lines.append("")
    lines.append(format_breakdown(breakdown, precision))
    return '\n'.join(lines)


def format_candidates(candidates: Sequence, precision: int = 6) -> str:
    """
    Format generated candidates, best first, numbered from 0.

    Args:
        candidates: Candidate objects with layout and score attributes

    Returns:
        One line per candidate: index, encoded layout and score
    """
    if not candidates:
        return "No layouts generated."
    lines = []
    for i, candidate in enumerate(candidates):
        lines.append(f"{i:>3}  {candidate.layout.encode()}  {candidate.score:12.{precision}f}")
    return '\n'.join(lines)


def format_ranking(ranking: List[Tuple[str, float]], precision: int = 6) -> str:
    """Format (name, score) pairs as an aligned ranking table (empty for no pairs)."""
    if not ranking:
        return ""
    width = max(len(name) for name, _ in ranking)
    width = max(width, 4)
    lines = [f"{'Name':<{width}}  {'Score':>12}"]
    for name, score in ranking:
        lines.append(f"{name:<{width}}  {score:12.{precision}f}")
    return '\n'.join(lines)


def format_comparison(comparison: LayoutComparison,
                      layouts: Optional[Tuple[Layout, Layout]] = None,
                      geometry: Optional[Geometry] = None,
                      precision: int = 6) -> str:
    """
    Format a two-layout comparison: weighted contribution per metric side by
    side, and the difference (first minus second).

    Args:
        comparison: Result of LayoutStore.compare
        layouts: Optional pair of layouts to draw above the table
        geometry: Geometry for drawing the layouts
        precision: Decimal places

    Returns:
        Formatted multi-line string
    """
    lines = []
    if layouts is not None and geometry is not None:
        for name, layout in zip((comparison.name1, comparison.name2), layouts):
            lines.append(name)
            lines.append(format_layout(layout, geometry))
            lines.append("")

    col = max(12, len(comparison.name1), len(comparison.name2))
    lines.append(f"  {'Metric':<22} {comparison.name1:>{col}} {comparison.name2:>{col}} {'Difference':>12}")

    b1, b2, delta = comparison.breakdown1, comparison.breakdown2, comparison.delta
    for name in delta.weighted:
        lines.append(
            f"  {_metric_label(name):<22}"
            f" {b1.weighted.get(name, 0.0):{col}.{precision}f}"
            f" {b2.weighted.get(name, 0.0):{col}.{precision}f}"
            f" {delta.weighted[name]:+12.{precision}f}"
        )
    lines.append(
        f"  {'Total score':<22}"
        f" {b1.total:{col}.{precision}f}"
        f" {b2.total:{col}.{precision}f}"
        f" {delta.total:+12.{precision}f}"
    )
    return '\n'.join(lines)


def format_metric_catalog() -> str:
    """List registered metrics with their n-gram order and description."""
    order_names = {1: 'character', 2: 'bigram', 3: 'trigram'}
    lines = []
    for name, spec in METRIC_REGISTRY.items():
        lines.append(f"  {name:<22} {order_names[spec.order]:<10} {spec.description}")
    return '\n'.join(lines)


def format_ranking_csv(ranking: List[Tuple[str, float]],
                       layouts: Dict[str, Layout],
                       breakdowns: Dict[str, MetricBreakdown],
                       precision: int = 6) -> str:
    """
    Format a ranking as CSV with one column per raw and weighted metric.

    Args:
        ranking: (name, score) pairs in display order
        layouts: Stored layouts by name
        breakdowns: Breakdowns by name
        precision: Decimal places

    Returns:
        CSV text including the header row
    """
    buffer = io.StringIO()
    metric_columns: List[str] = []
    for name, _ in ranking:
        for column in breakdowns[name].to_dict():
            if column not in metric_columns:
                metric_columns.append(column)

    writer = csv.DictWriter(buffer, fieldnames=['name', 'layout'] + metric_columns,
                            lineterminator='\n')
    writer.writeheader()
    for name, _ in ranking:
        row = {'name': name, 'layout': layouts[name].encode()}
        for column, value in breakdowns[name].to_dict().items():
            row[column] = f"{value:.{precision}f}"
        writer.writerow(row)
    return buffer.getvalue().rstrip('\n')
