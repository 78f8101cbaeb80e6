"""Score an atlas view against a benchmark and export it in one run."""

from __future__ import annotations

import argparse
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Sequence

from atlas_data import DEFAULT_DATA_DIR, DEFAULT_TIMEOUT, AtlasDataset, load_atlas
from atlas_records import AtlasRecord
from atlas_scoring import (
    ScoringContext,
    ZoneThresholds,
    build_context,
    compute_thresholds,
    display_score,
    reindex,
)
from atlas_views import (
    apply_demographic_filters,
    apply_twin_filters,
    apply_zone_filters,
    display_name,
    export_csv,
    export_filename,
)
from scoring_config import COMPOSITE, VIEWS, parse_states

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


@dataclass(frozen=True)
class AtlasBuildResult:
    dataset: AtlasDataset
    context: ScoringContext
    records: List[AtlasRecord]
    thresholds: Optional[ZoneThresholds]


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Score and export an Expansion Atlas view in a single run."
    )
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=DEFAULT_DATA_DIR,
        help="Directory holding the tract, twin and hot-zone JSON files.",
    )
    parser.add_argument(
        "--base-url",
        default="",
        help="Fetch the JSON files from this base URL instead of --data-dir.",
    )
    parser.add_argument(
        "--view",
        choices=VIEWS,
        default="demographic",
        help="Which dataset to score and export.",
    )
    parser.add_argument(
        "--benchmark",
        default=COMPOSITE,
        help="Benchmark property name to re-index against, or 'composite'.",
    )
    parser.add_argument(
        "--states",
        default="",
        help="Comma-separated state filter, e.g. 'IL,TX'.",
    )
    parser.add_argument(
        "--min-score",
        type=float,
        default=0.0,
        help="Drop records whose current score is below this value.",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=Path("output"),
        help="Directory where the CSV export will be written.",
    )
    parser.add_argument(
        "--top-n",
        type=int,
        default=10,
        help="Rows to print in the summary.",
    )
    parser.add_argument(
        "--timeout",
        type=int,
        default=DEFAULT_TIMEOUT,
        help="Per-request timeout in seconds when using --base-url.",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=LOG_LEVELS,
        help="Logging verbosity.",
    )
    return parser.parse_args(argv)


def _validate_args(args: argparse.Namespace) -> None:
    if args.min_score < 0 or args.min_score > 100:
        raise SystemExit("--min-score must be between 0 and 100.")
    if args.top_n < 0:
        raise SystemExit("--top-n must be zero or greater.")
    if args.timeout <= 0:
        raise SystemExit("--timeout must be greater than zero.")


def build_atlas(
    dataset: AtlasDataset,
    view: str,
    benchmark: str,
    states: Sequence[str],
    min_score: float,
) -> AtlasBuildResult:
    context = build_context(dataset.tracts, dataset.twins, dataset.benchmarks)
    thresholds = None

    if view == "twins":
        records = apply_twin_filters(
            dataset.twins,
            benchmark=benchmark,
            states=states,
            min_score=min_score,
        )
    elif view == "hotzones":
        indexed = reindex(dataset.zones, benchmark, context)
        records = apply_zone_filters(
            indexed,
            benchmark=benchmark,
            states=states,
            min_score=min_score,
        )
        thresholds = compute_thresholds(records, benchmark)
    else:
        indexed = reindex(dataset.tracts, benchmark, context)
        records = apply_demographic_filters(
            indexed,
            benchmark=benchmark,
            states=states,
            min_score=min_score,
        )

    return AtlasBuildResult(
        dataset=dataset,
        context=context,
        records=records,
        thresholds=thresholds,
    )


def _print_summary(
    result: AtlasBuildResult,
    view: str,
    benchmark: str,
    output_path: Optional[Path],
    top_n: int,
) -> None:
    print("Expansion Atlas:")
    print(
        f"- Loaded: {len(result.dataset.tracts)} tracts | "
        f"{len(result.dataset.twins)} twins | {len(result.dataset.zones)} zones | "
        f"{len(result.dataset.benchmarks)} benchmarks"
    )
    print(f"- View: {view} | benchmark={benchmark} | rows={len(result.records)}")
    if result.thresholds is not None:
        print(f"- Zone thresholds: high={result.thresholds.high} mid={result.thresholds.mid}")
    if output_path is not None:
        print(f"- Export: {output_path.resolve()}")
    else:
        print("- Export: skipped (no rows)")

    if top_n and result.records:
        print("\nTop rows:")
        for rank, record in enumerate(result.records[:top_n], start=1):
            score = display_score(record, benchmark)
            print(f"{rank:>3}. {score:6.1f}  {display_name(record)}, {record.state}")
    print(f"\nGenerated at: {datetime.now().isoformat(timespec='seconds')}")


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    _validate_args(args)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s [%(levelname)s] %(message)s",
    )

    try:
        states = parse_states(args.states)
    except ValueError as exc:
        raise SystemExit(f"Invalid states: {exc}") from exc

    dataset = load_atlas(args.base_url or args.data_dir, timeout=args.timeout)
    known = {benchmark.name for benchmark in dataset.benchmarks}
    if args.benchmark != COMPOSITE and args.benchmark not in known:
        raise SystemExit(f"Unknown benchmark: '{args.benchmark}'.")

    result = build_atlas(
        dataset,
        view=args.view,
        benchmark=args.benchmark,
        states=states,
        min_score=args.min_score,
    )

    output_path = None
    if result.records:
        args.output_dir.mkdir(parents=True, exist_ok=True)
        output_path = args.output_dir / export_filename(args.view)
        output_path.write_text(
            export_csv(result.records, args.view, args.benchmark),
            encoding="utf-8",
        )

    _print_summary(result, args.view, args.benchmark, output_path, args.top_n)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
