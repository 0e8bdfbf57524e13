"""
SIRE report generator
---------------------
Renders an `ImpactReport` as:
- one PNG chart per metric group (horizontal bars, one panel per metric,
  top-3 categories highlighted), and
- a DOCX document holding both charts and the ranked tables.

matplotlib and python-docx are imported lazily so the pipeline and the
interactive shell work without them until a chart or report is requested.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional
import os
import tempfile

from .metrics import GROUPS, MetricGroup, get_group
from .models import GroupResult, ImpactReport, LoadedDataset

TOP_COLOR = "#c0392b"
OTHER_COLOR = "#95a5a6"


# -----------------------------
# Configuration / citation types
# -----------------------------

@dataclass
class DatasetCitation:
    """Minimal dataset citation metadata for the DOCX report."""
    database_name: str = "NOAA Storm Database"
    institutional_author: str = "U.S. National Oceanic and Atmospheric Administration (NOAA)"
    website: str = "https://www.ncdc.noaa.gov/stormevents/"
    file_name: Optional[str] = None


@dataclass
class ReportConfig:
    """High-level knobs to control how the report is written."""
    title: str = "Storm Impact Report"
    subtitle: str = "Most harmful weather event types in the United States"
    dataset_name: str = "NOAA Storm Database (StormData.csv.bz2)"
    citation: DatasetCitation = field(default_factory=DatasetCitation)

    # Rows per metric in the ranked tables
    max_rows_table: int = 15

    # Optional: CLI commands that changed the analysis settings
    command_log: Optional[List[str]] = None


def _pyplot():
    try:
        import matplotlib
        matplotlib.use("Agg")
        import matplotlib.pyplot as plt
    except ImportError as e:
        raise ImportError(
            "Missing dependency: matplotlib.\n"
            "Install it with: python -m pip install matplotlib"
        ) from e
    return plt


def _fmt(value: float, group: MetricGroup) -> str:
    v = value / group.unit_divisor
    if group.unit_divisor == 1:
        return f"{v:,.0f}"
    return f"{v:,.2f}"


# -----------------------------
# Charts
# -----------------------------

def render_group_chart(result: GroupResult, out_path: str, group: Optional[MetricGroup] = None) -> str:
    """Draw one group as horizontal bars, one panel per metric.

    Bars are ordered by rank (rank 1 on top); top-3 bars use TOP_COLOR.
    Values are divided by the group's unit (1e9 for economic damage).
    """
    plt = _pyplot()
    group = group or get_group(result.group)
    names = group.metric_names()

    fig, axes = plt.subplots(1, len(names), figsize=(6 * len(names), 5), squeeze=False)
    for ax, name in zip(axes[0], names):
        entries = result.ranked.get(name, [])
        labels = [e.category for e in entries]
        values = [e.value / group.unit_divisor for e in entries]
        colors = [TOP_COLOR if e.is_top3 else OTHER_COLOR for e in entries]
        ax.barh(labels, values, color=colors)
        ax.invert_yaxis()
        ax.set_title(group.metric(name).label)
        ax.set_xlabel(group.unit_label)
        if not entries:
            ax.text(0.5, 0.5, "no significant categories", ha="center", va="center",
                    transform=ax.transAxes)

    fig.suptitle(group.title)
    fig.tight_layout()
    os.makedirs(os.path.dirname(out_path) or ".", exist_ok=True)
    fig.savefig(out_path, dpi=150)
    plt.close(fig)
    return out_path


def render_charts(report: ImpactReport, out_dir: str) -> Dict[str, str]:
    """Write `<group>_impact.png` for every group. Returns {group: path}."""
    paths: Dict[str, str] = {}
    for group, result in zip(GROUPS, (report.health, report.economic)):
        path = os.path.join(out_dir, f"{group.name}_impact.png")
        paths[group.name] = render_group_chart(result, path, group)
    return paths


# -----------------------------
# DOCX
# -----------------------------

def generate_docx_report(
    report: ImpactReport,
    out_path: str,
    *,
    dataset: Optional[LoadedDataset] = None,
    scale_caveats: Optional[Dict[str, int]] = None,
    config: Optional[ReportConfig] = None,
) -> str:
    """Generate a DOCX report with both charts and the ranked tables."""
    config = config or ReportConfig()

    # pictures are embedded when added, so the PNGs only live until the document is built
    with tempfile.TemporaryDirectory(prefix="sire_report_") as tmpdir:
        charts = render_charts(report, tmpdir)
        doc = _build_docx(report, charts, dataset, scale_caveats, config)

    os.makedirs(os.path.dirname(out_path) or ".", exist_ok=True)
    doc.save(out_path)
    return out_path


def _build_docx(report: ImpactReport, charts: Dict[str, str], dataset: Optional[LoadedDataset],
                scale_caveats: Optional[Dict[str, int]], config: ReportConfig):
    try:
        from docx import Document
        from docx.shared import Inches, Pt
        from docx.enum.text import WD_ALIGN_PARAGRAPH
    except ImportError as e:
        raise ImportError(
            "Missing dependency: python-docx.\n"
            "Install it with: python -m pip install python-docx"
        ) from e

    doc = Document()
    doc.styles["Normal"].font.size = Pt(11)

    def _center_title(text: str, size: int, bold: bool = False, italic: bool = False) -> None:
        p = doc.add_paragraph()
        r = p.add_run(text)
        r.bold = bold
        r.italic = italic
        r.font.size = Pt(size)
        p.alignment = WD_ALIGN_PARAGRAPH.CENTER

    def _kv(key: str, value: str) -> None:
        p = doc.add_paragraph()
        r = p.add_run(f"{key}: ")
        r.bold = True
        p.add_run(value)

    _center_title(config.title, 22, bold=True)
    _center_title(config.subtitle, 12, italic=True)

    doc.add_paragraph("")
    _kv("Dataset", config.dataset_name)
    if dataset is not None:
        _kv("Rows read", f"{len(dataset):,}")
    _kv("Events counted from", report.config.since.isoformat())
    _kv("Significance threshold", f"{report.config.threshold:.0%} of the largest category per metric")
    if report.config.where:
        _kv("Record filter", report.config.where)
    for g in report.groups():
        _kv(f"Records used ({g.group})", f"{g.records_used:,}")

    cit = config.citation
    doc.add_heading("Dataset citation", level=1)
    if cit.file_name:
        doc.add_paragraph(f"Data file used: {cit.file_name}")
    doc.add_paragraph(f"{cit.institutional_author}. {cit.database_name}. {cit.website}.")

    # Data caveats
    caveats: List[str] = []
    if dataset is not None and dataset.unparsed_dates:
        caveats.append(f"{dataset.unparsed_dates:,} rows have an unparseable begin date and were not counted.")
    if scale_caveats:
        total = sum(scale_caveats.values())
        codes = ", ".join(f"'{k}' ({v})" for k, v in scale_caveats.items())
        caveats.append(
            f"{total:,} damage values carry a scale code other than K/M/B and were counted "
            f"with multiplier 1: {codes}."
        )
    if caveats:
        doc.add_heading("Data caveats", level=1)
        for line in caveats:
            doc.add_paragraph(line, style="List Bullet")

    for group, result in zip(GROUPS, (report.health, report.economic)):
        doc.add_heading(group.title, level=1)
        doc.add_picture(charts[group.name], width=Inches(6.5))
        for name in group.metric_names():
            entries = result.ranked.get(name, [])[:config.max_rows_table]
            doc.add_paragraph(f"{group.metric(name).label} ({group.unit_label})")
            t = doc.add_table(rows=1, cols=3)
            h = t.rows[0].cells
            h[0].text = "Rank"
            h[1].text = "Event type"
            h[2].text = "Total"
            for e in entries:
                r = t.add_row().cells
                r[0].text = f"{e.rank}*" if e.is_top3 else str(e.rank)
                r[1].text = e.category
                r[2].text = _fmt(e.value, group)
            doc.add_paragraph("")

    # -----------------------------
    # Reproducibility footer
    # -----------------------------
    doc.add_heading("Reproducibility footer", level=1)
    from . import __version__ as sire_version
    from datetime import datetime as _dt
    doc.add_paragraph(f"SIRE version: {sire_version}")
    doc.add_paragraph(f"Report generated at: {_dt.now().isoformat(timespec='seconds')}")
    doc.add_paragraph(f"Settings: {report.config.describe()}")
    if config.command_log:
        doc.add_paragraph("Commands used (log):")
        for line in config.command_log:
            doc.add_paragraph(line, style="List Bullet")
    return doc
