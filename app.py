from __future__ import annotations

from datetime import datetime
from typing import List, Mapping, Optional, Sequence, Tuple

import pandas as pd
import streamlit as st
import streamlit.runtime as st_runtime

from atlas_data import DEFAULT_DATA_DIR, AtlasDataset, load_atlas
from atlas_records import AtlasRecord, Benchmark, TwinRecord, ZoneRecord, coerce_value
from atlas_scoring import (
    ScoringContext,
    ZoneThresholds,
    build_context,
    compute_thresholds,
    display_score,
    reindex,
    z_scores,
)
from atlas_views import (
    apply_demographic_filters,
    apply_twin_filters,
    apply_zone_filters,
    benchmark_options,
    classify_tract,
    display_name,
    export_csv,
    export_filename,
    slider_range,
    summarize_view,
    zscore_bar,
)
from scoring_config import COMPOSITE, SIM_FEATURES, SIZE_CLASSES

VIEW_LABELS = {
    "Demographic": "demographic",
    "Property Twins": "twins",
    "Hot Zones": "hotzones",
}

PRIME_LABELS = {
    "demographic": "Prime",
    "twins": "Benchmarks",
    "hotzones": "Tracts",
}

PORTFOLIO_BENCHMARK_ROWS = (
    ("Avg Hispanic", "45–60%"),
    ("Med HH Income", "$55–75K"),
    ("Blue Collar", "12–18%"),
    ("Renter %", "55–70%"),
    ("Home Value", "$165–425K"),
)

DEFAULT_FILTER_STATE = {
    "view_label": "Demographic",
    "benchmark_label": "Composite score",
    "state_filter": "All",
    "segment_filter": "All",
    "zone_search": "",
    "min_score": 0,
    "list_rows": 25,
}


def _initialize_ui_state() -> None:
    for key, value in DEFAULT_FILTER_STATE.items():
        st.session_state.setdefault(key, value)


def _reset_filter_controls() -> None:
    for key, value in DEFAULT_FILTER_STATE.items():
        st.session_state[key] = value


def _streamlit_runtime_exists() -> bool:
    try:
        return bool(st_runtime.exists())
    except Exception:
        return False


def _cache_data_passthrough(*_args, **_kwargs):
    def decorator(func):
        return func

    return decorator


def _safe_cache_data(*args, **kwargs):
    if _streamlit_runtime_exists():
        return st.cache_data(*args, **kwargs)
    return _cache_data_passthrough(*args, **kwargs)


def _safe_cache_resource(*args, **kwargs):
    if _streamlit_runtime_exists():
        return st.cache_resource(*args, **kwargs)
    return _cache_data_passthrough(*args, **kwargs)


@_safe_cache_resource(ttl=300, show_spinner=False)
def load_scored_atlas(location: str) -> Tuple[AtlasDataset, ScoringContext]:
    dataset = load_atlas(location)
    context = build_context(dataset.tracts, dataset.twins, dataset.benchmarks)
    return dataset, context


def _filter_view(
    dataset: AtlasDataset,
    context: ScoringContext,
    view: str,
    benchmark: str,
    state: str,
    segment: str,
    search: str,
    min_score: float,
) -> List[AtlasRecord]:
    states = [] if state == "All" else [state]
    segment_value = None if segment == "All" else segment

    if view == "twins":
        return apply_twin_filters(
            dataset.twins,
            benchmark=benchmark,
            property_type=segment_value,
            states=states,
            min_score=min_score,
        )
    if view == "hotzones":
        return apply_zone_filters(
            reindex(dataset.zones, benchmark, context),
            benchmark=benchmark,
            size_class=segment_value,
            states=states,
            search=search,
            min_score=min_score,
        )
    return apply_demographic_filters(
        reindex(dataset.tracts, benchmark, context),
        benchmark=benchmark,
        states=states,
        min_score=min_score,
    )


def _segment_options(dataset: AtlasDataset, view: str) -> List[str]:
    if view == "twins":
        return ["All"] + sorted({twin.property_type for twin in dataset.twins if twin.property_type})
    if view == "hotzones":
        return ["All", *SIZE_CLASSES]
    return ["All"]


def _view_records(dataset: AtlasDataset, view: str) -> Sequence[AtlasRecord]:
    if view == "twins":
        return dataset.twins
    if view == "hotzones":
        return dataset.zones
    return dataset.tracts


def _zone_tag(record: AtlasRecord, zone_names: Mapping[object, str]) -> str:
    if isinstance(record, ZoneRecord):
        return ""
    return str(record.get("zone_name") or zone_names.get(record.get("cluster_id")) or "")


def _fmt_pct(value: Optional[float]) -> str:
    return f"{value:.0f}%" if value is not None else "—"


def _fmt_income(value: Optional[float]) -> str:
    return f"${value / 1000:.0f}K" if value is not None else "—"


def _fmt_density(value: Optional[float]) -> str:
    return f"{value:,.0f}" if value else "—"


def _benchmark_short_name(dataset: AtlasDataset, name: str) -> str:
    for benchmark in dataset.benchmarks:
        if benchmark.name == name:
            return benchmark.short_name
    return Benchmark(attributes={"name": name}).short_name


def _comparison_panel(
    dataset: AtlasDataset,
    context: ScoringContext,
    view: str,
    benchmark: str,
) -> Tuple[str, List[Tuple[str, str]]]:
    """Title and rows for the sidebar panel next to the ranked list.

    A selected benchmark shows its profile values. The composite selection
    shows portfolio reference ranges, benchmark averages or cluster totals,
    depending on the view.
    """
    profile = context.profiles.get(benchmark) if benchmark != COMPOSITE else None
    if profile is not None:
        short_name = _benchmark_short_name(dataset, benchmark)
        rows = [
            ("Hispanic", _fmt_pct(coerce_value(profile.get("pct_hispanic")))),
            ("Income", _fmt_income(coerce_value(profile.get("med_hh_income")))),
            ("Pop Density", _fmt_density(coerce_value(profile.get("pop_density")))),
        ]
        if view == "hotzones":
            return f"Indexed to: {short_name}", rows + [("Algorithm", "DBSCAN")]
        if view == "twins":
            return short_name, rows + [("Algorithm", "Cosine Sim")]
        rows.append(("Renter", _fmt_pct(coerce_value(profile.get("pct_renter")))))
        rows.append(("Blue Collar", _fmt_pct(coerce_value(profile.get("blue_collar_pct")))))
        return f"Benchmark: {short_name}", rows

    if view == "hotzones":
        zones = dataset.zones
        return "DBSCAN Cluster Survey", [
            ("Clusters", str(sum(1 for zone in zones if zone.tract_count > 1))),
            ("Solo Zones", str(sum(1 for zone in zones if zone.tract_count == 1))),
            ("Total Pop", f"{sum(zone.population or 0.0 for zone in zones):,.0f}"),
            ("Total Tracts", f"{sum(zone.tract_count for zone in zones):,}"),
        ]
    if view == "twins":
        if not dataset.benchmarks:
            return "Portfolio DNA", []
        hispanic_value = [b for b in dataset.benchmarks if b.type == "Hispanic Value"]
        hispanic = [b.value("pct_hispanic") or 0.0 for b in hispanic_value]
        income = [b.value("med_hh_income") or 0.0 for b in hispanic_value]
        return "Portfolio DNA", [
            ("Benchmarks", str(len(dataset.benchmarks))),
            ("Hispanic Value Avg", f"{sum(hispanic) / len(hispanic):.0f}%" if hispanic else "—"),
            ("Avg Income (HV)", f"${sum(income) / len(income) / 1000:.0f}K" if income else "—"),
            ("Features", f"{len(SIM_FEATURES)}-dim"),
            ("Algorithm", "Cosine Sim"),
        ]
    return "Portfolio Benchmark", list(PORTFOLIO_BENCHMARK_ROWS)


def _tier_label(
    record: AtlasRecord,
    benchmark: str,
    thresholds: Optional[ZoneThresholds],
) -> str:
    score = display_score(record, benchmark)
    if isinstance(record, ZoneRecord) and thresholds is not None:
        return thresholds.classify(score)
    return classify_tract(score)


def _results_table(
    records: Sequence[AtlasRecord],
    view: str,
    benchmark: str,
    thresholds: Optional[ZoneThresholds],
    zone_names: Optional[Mapping[object, str]] = None,
) -> pd.DataFrame:
    zone_names = zone_names or {}
    rows = []
    for rank, record in enumerate(records, start=1):
        row = {
            "rank": rank,
            "name": display_name(record),
            "state": record.state,
            "zone": _zone_tag(record, zone_names),
            "score": display_score(record, benchmark),
            "tier": _tier_label(record, benchmark, thresholds),
            "population": record.population,
            "pct_hispanic": record.value("pct_hispanic"),
            "med_hh_income": record.value("med_hh_income"),
            "pct_renter": record.value("pct_renter"),
            "pct_snap": record.value("pct_snap"),
        }
        if view == "twins":
            row["matched_property"] = record.get("matched_property")
            row["property_type"] = record.get("property_type")
        elif view == "hotzones":
            row["size_class"] = record.get("size_class")
            row["tract_count"] = record.get("tract_count")
        rows.append(row)
    return pd.DataFrame(rows)


def _profile_labels(records: Sequence[AtlasRecord]) -> List[str]:
    labels = []
    for record in records:
        label = f"{display_name(record)}, {record.state}"
        if isinstance(record, TwinRecord) and record.matched_property:
            label = f"{label} ({record.matched_property})"
        labels.append(label)
    return labels


def _zscore_table(record: AtlasRecord, benchmark: str, context: ScoringContext) -> pd.DataFrame:
    bars = [zscore_bar(zscore) for zscore in z_scores(record, benchmark, context)]
    return pd.DataFrame(
        [
            {
                "feature": bar.label,
                "z_score": bar.value,
                "bar_width_pct": round(bar.width_pct, 1),
                "direction": bar.direction,
                "severity": bar.severity,
            }
            for bar in bars
        ]
    )


def _profile_rows(
    record: AtlasRecord,
    benchmark: str,
    zone_names: Optional[Mapping[object, str]] = None,
) -> List[Tuple[str, str]]:
    def _fmt(value: Optional[float], pattern: str) -> str:
        return pattern.format(value) if value is not None else "—"

    rows = [
        ("Location", f"{display_name(record)}, {record.state}"),
    ]
    zone_tag = _zone_tag(record, zone_names or {})
    if zone_tag:
        rows.append(("Hot Zone", zone_tag))
    rows += [
        ("Score", f"{display_score(record, benchmark):.1f}"),
        ("Population", _fmt(record.population, "{:,.0f}")),
        ("Hispanic", _fmt(record.value("pct_hispanic"), "{:.0f}%")),
        ("Median Income", _fmt(record.value("med_hh_income"), "${:,.0f}")),
        ("Pop / Sq Mi", _fmt(record.value("pop_density") or record.value("avg_pop_density"), "{:,.0f}")),
        ("Renter", _fmt(record.value("pct_renter"), "{:.0f}%")),
        ("SNAP", _fmt(record.value("pct_snap"), "{:.0f}%")),
        ("HH Size", _fmt(record.value("avg_hh_size"), "{:.1f}")),
        ("Blue Collar", _fmt(record.value("blue_collar_pct"), "{:.0f}%")),
    ]
    if record.get("summary"):
        rows.append(("Summary", str(record.get("summary"))))
    if record.get("anchors"):
        rows.append(("Anchors", str(record.get("anchors"))))
    return rows


def app() -> None:
    st.set_page_config(
        page_title="Expansion Atlas",
        page_icon=":world_map:",
        layout="wide",
    )

    st.title("Expansion Atlas")
    st.caption(
        "Rank census tracts, property twins and hot zones against benchmark properties."
    )
    _initialize_ui_state()

    with st.sidebar:
        st.header("Data")
        location = st.text_input(
            "Data directory or base URL",
            value=str(DEFAULT_DATA_DIR),
            help="Folder or URL serving the tract, twin and hot-zone JSON files.",
        )
        if st.button("Reload Data"):
            load_scored_atlas.clear()

    with st.spinner("Loading and scoring atlas data..."):
        dataset, context = load_scored_atlas(location)

    if not (dataset.tracts or dataset.twins or dataset.zones):
        st.error(f"No atlas data found at `{location}`.")
        st.stop()

    options = benchmark_options(dataset.benchmarks)

    with st.sidebar:
        st.header("View")
        view_label = st.radio("Dataset", options=list(VIEW_LABELS.keys()), key="view_label")
        view = VIEW_LABELS[view_label]
        if st.session_state.get("benchmark_label") not in options:
            st.session_state["benchmark_label"] = "Composite score"
        benchmark_label = st.selectbox(
            "Benchmark",
            options=list(options.keys()),
            key="benchmark_label",
            help="Re-rank by cosine similarity to a benchmark property.",
        )
        benchmark = options[benchmark_label]

        st.header("Filters")
        state = st.selectbox("State", options=["All", *dataset.states()], key="state_filter")
        segment = st.selectbox(
            "Segment",
            options=_segment_options(dataset, view),
            key="segment_filter",
        )
        search = ""
        if view == "hotzones":
            search = st.text_input("Search zones or tracts", key="zone_search")
        _, high = slider_range(
            reindex(_view_records(dataset, view), benchmark, context),
            benchmark,
        )
        high = max(high, 1)
        if st.session_state.get("min_score", 0) > high:
            st.session_state["min_score"] = high
        min_score = st.slider(
            "Min Score",
            min_value=0,
            max_value=high,
            key="min_score",
        )
        list_rows = st.slider(
            "List Rows",
            min_value=10,
            max_value=200,
            step=5,
            key="list_rows",
        )
        st.button("Reset Filters", on_click=_reset_filter_controls)

        panel_title, panel_rows = _comparison_panel(dataset, context, view, benchmark)
        if panel_rows:
            st.header(panel_title)
            for label, value in panel_rows:
                st.markdown(f"**{label}:** {value}")

    zone_names = dataset.zone_names()
    filtered = _filter_view(
        dataset,
        context,
        view=view,
        benchmark=benchmark,
        state=state,
        segment=segment,
        search=search,
        min_score=float(min_score),
    )
    if not filtered:
        st.warning("No records match your current filters. Reset or loosen one or two constraints.")
        st.button("Reset Filters to Defaults", on_click=_reset_filter_controls)
        st.stop()

    thresholds = compute_thresholds(filtered, benchmark) if view == "hotzones" else None
    summary = summarize_view(filtered, view, benchmark)

    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Zones" if view == "hotzones" else "Tracts", f"{summary.total:,}")
    col2.metric(PRIME_LABELS[view], f"{summary.prime:,}")
    col3.metric("Avg Score", "—" if summary.average is None else str(summary.average))
    col4.metric("States", f"{summary.states:,}")
    if thresholds is not None:
        st.caption(f"Zone tiers: High ≥ {thresholds.high:.1f} | Mid ≥ {thresholds.mid:.1f}")
    if benchmark != COMPOSITE:
        st.caption(f"Scores re-indexed by similarity to `{benchmark}`.")

    tab_list, tab_profile = st.tabs(["Ranked List", "Profile"])

    with tab_list:
        st.dataframe(
            _results_table(filtered[:list_rows], view, benchmark, thresholds, zone_names),
            use_container_width=True,
            hide_index=True,
        )
        st.download_button(
            label="Download Filtered CSV",
            data=export_csv(filtered, view, benchmark).encode("utf-8"),
            file_name=export_filename(view),
            mime="text/csv",
        )

    with tab_profile:
        picker = filtered[:2000]
        labels = _profile_labels(picker)
        selected_index = st.selectbox(
            "Find a profile",
            options=range(len(picker)),
            format_func=lambda index: labels[index],
        )
        selected = picker[selected_index]

        left_col, right_col = st.columns(2)
        with left_col:
            for label, value in _profile_rows(selected, benchmark, zone_names):
                st.markdown(f"**{label}:** {value}")
        with right_col:
            zscore_benchmark = benchmark
            if view == "twins" and benchmark == COMPOSITE:
                zscore_benchmark = str(selected.get("matched_property") or COMPOSITE)
            zscore_frame = _zscore_table(selected, zscore_benchmark, context)
            if zscore_frame.empty:
                st.caption("Pick a benchmark to see feature deviations.")
            else:
                st.markdown(f"**Z-Score vs {_benchmark_short_name(dataset, zscore_benchmark)}**")
                st.dataframe(zscore_frame, use_container_width=True, hide_index=True)

    st.caption(f"Rendered at {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")


if __name__ == "__main__":
    if not _streamlit_runtime_exists():
        raise SystemExit("Run this UI with: python3 -m streamlit run app.py")
    app()
