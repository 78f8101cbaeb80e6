import unittest

from app import (
    _comparison_panel,
    _filter_view,
    _profile_labels,
    _profile_rows,
    _results_table,
    _segment_options,
    _tier_label,
    _zone_tag,
    _zscore_table,
)
from atlas_data import AtlasDataset
from atlas_records import Benchmark, TractRecord, TwinRecord, ZoneRecord
from atlas_scoring import build_context, compute_thresholds
from scoring_config import COMPOSITE, parse_states


def _dataset() -> AtlasDataset:
    tracts = (
        TractRecord(attributes={"name": "Census Tract 1; Cook County; Illinois", "county": "Cook County", "state": "IL", "cluster_id": 1, "match_score": 80, "pct_hispanic": 70, "med_hh_income": 45000}),
        TractRecord(attributes={"name": "Census Tract 2; Lake County; Indiana", "county": "Lake County", "state": "IN", "match_score": 65, "pct_hispanic": 15, "med_hh_income": 95000}),
    )
    twins = (
        TwinRecord(attributes={"name": "Census Tract 3; Harris County; Texas", "county": "Harris County", "state": "TX", "twin_score": 88, "matched_property": "Plaza Azteca", "property_type": "Hispanic Value", "pct_hispanic": 75, "med_hh_income": 42000}),
        TwinRecord(attributes={"name": "Census Tract 4; Dane County; Wisconsin", "county": "Dane County", "state": "WI", "twin_score": 61, "matched_property": "Metro Square", "property_type": "Urban Core", "pct_hispanic": 20, "med_hh_income": 88000}),
    )
    zones = (
        ZoneRecord(attributes={"zone_name": "Pilsen", "cluster_id": 1, "state": "IL", "total_pop": 24000, "avg_score": 72, "size_class": "LARGE ZONE", "tract_count": 6, "pct_hispanic": 68, "avg_pop_density": 15000}),
        ZoneRecord(attributes={"zone_name": "Hammond", "cluster_id": 2, "state": "IN", "total_pop": 3000, "avg_score": 41, "size_class": "SOLO ZONE", "tract_count": 1, "pct_hispanic": 30}),
        ZoneRecord(attributes={"zone_name": "Gary", "cluster_id": 3, "state": "IN", "total_pop": 8000, "avg_score": 55, "size_class": "MICRO ZONE", "tract_count": 2, "pct_hispanic": 12}),
    )
    benchmarks = (
        Benchmark(attributes={"name": "Plaza Azteca", "type": "Hispanic Value"}),
        Benchmark(attributes={"name": "Metro Square", "type": "Urban Core"}),
    )
    return AtlasDataset(tracts=tracts, twins=twins, zones=zones, benchmarks=benchmarks)


class ParseStatesTests(unittest.TestCase):
    def test_parse_states_normalizes_and_dedupes(self) -> None:
        self.assertEqual(parse_states(" il, TX,il "), ["IL", "TX"])
        self.assertEqual(parse_states(""), [])

    def test_parse_states_rejects_unknown_codes(self) -> None:
        with self.assertRaises(ValueError):
            parse_states("CA")
        with self.assertRaises(ValueError):
            parse_states("IL,,TX")
        with self.assertRaises(ValueError):
            parse_states("Illinois")


class FilterViewTests(unittest.TestCase):
    def setUp(self) -> None:
        self.dataset = _dataset()
        self.context = build_context(self.dataset.tracts, self.dataset.twins, self.dataset.benchmarks)

    def test_composite_demographic_keeps_source_order(self) -> None:
        filtered = _filter_view(self.dataset, self.context, "demographic", COMPOSITE, "All", "All", "", 0.0)
        self.assertEqual([t.state for t in filtered], ["IL", "IN"])

    def test_benchmark_reranks_tracts(self) -> None:
        filtered = _filter_view(self.dataset, self.context, "demographic", "Metro Square", "All", "All", "", 0.0)
        self.assertEqual([t.state for t in filtered], ["IN", "IL"])
        self.assertIsNotNone(filtered[0].indexed_score)

    def test_twins_segment_filter(self) -> None:
        filtered = _filter_view(self.dataset, self.context, "twins", COMPOSITE, "All", "Urban Core", "", 0.0)
        self.assertEqual([t.state for t in filtered], ["WI"])

    def test_zone_search_and_state(self) -> None:
        filtered = _filter_view(self.dataset, self.context, "hotzones", COMPOSITE, "IN", "All", "gar", 0.0)
        self.assertEqual([z.name for z in filtered], ["Gary"])

    def test_segment_options(self) -> None:
        self.assertEqual(_segment_options(self.dataset, "twins"), ["All", "Hispanic Value", "Urban Core"])
        self.assertEqual(_segment_options(self.dataset, "demographic"), ["All"])
        self.assertIn("MEGA ZONE", _segment_options(self.dataset, "hotzones"))


class TableTests(unittest.TestCase):
    def setUp(self) -> None:
        self.dataset = _dataset()
        self.context = build_context(self.dataset.tracts, self.dataset.twins, self.dataset.benchmarks)

    def test_zone_table_uses_adaptive_tiers(self) -> None:
        zones = list(self.dataset.zones)
        thresholds = compute_thresholds(zones)
        table = _results_table(zones, "hotzones", COMPOSITE, thresholds)
        self.assertEqual(table["tier"].tolist(), ["High", "Mid", "Mid"])
        self.assertEqual(table["rank"].tolist(), [1, 2, 3])
        self.assertIn("size_class", table.columns)

    def test_tract_tier_label(self) -> None:
        self.assertEqual(_tier_label(self.dataset.tracts[0], COMPOSITE, None), "Prime Target")
        self.assertEqual(_tier_label(self.dataset.tracts[1], COMPOSITE, None), "Strong")

    def test_zscore_table_requires_benchmark(self) -> None:
        tract = self.dataset.tracts[0]
        self.assertTrue(_zscore_table(tract, COMPOSITE, self.context).empty)
        table = _zscore_table(tract, "Plaza Azteca", self.context)
        self.assertEqual(len(table), 8)
        self.assertEqual(table.loc[0, "feature"], "Hispanic")

    def test_profile_rows_format_missing_values(self) -> None:
        rows = dict(_profile_rows(self.dataset.zones[1], COMPOSITE))
        self.assertEqual(rows["Location"], "Hammond, IN")
        self.assertEqual(rows["Score"], "41.0")
        self.assertEqual(rows["Median Income"], "—")
        self.assertNotIn("Hot Zone", rows)

    def test_tract_table_tags_hot_zone_by_cluster(self) -> None:
        table = _results_table(
            list(self.dataset.tracts), "demographic", COMPOSITE, None, self.dataset.zone_names()
        )
        self.assertEqual(table["zone"].tolist(), ["Pilsen", ""])

    def test_zone_table_leaves_zone_tag_blank(self) -> None:
        zones = list(self.dataset.zones)
        table = _results_table(zones, "hotzones", COMPOSITE, None, self.dataset.zone_names())
        self.assertEqual(table["zone"].tolist(), ["", "", ""])

    def test_profile_rows_show_hot_zone(self) -> None:
        zone_names = self.dataset.zone_names()
        rows = dict(_profile_rows(self.dataset.tracts[0], COMPOSITE, zone_names))
        self.assertEqual(rows["Hot Zone"], "Pilsen")
        self.assertNotIn("Hot Zone", dict(_profile_rows(self.dataset.tracts[1], COMPOSITE, zone_names)))

    def test_zone_tag_prefers_record_zone_name(self) -> None:
        twin = TwinRecord(attributes={"name": "Census Tract 9", "state": "TX", "zone_name": "East End", "cluster_id": 3})
        self.assertEqual(_zone_tag(twin, self.dataset.zone_names()), "East End")
        self.assertEqual(_zone_tag(self.dataset.tracts[1], self.dataset.zone_names()), "")

    def test_profile_labels_keep_twins_apart(self) -> None:
        attributes = {"name": "Census Tract 5; Harris County; Texas", "county": "Harris County", "state": "TX"}
        twins = [
            TwinRecord(attributes={**attributes, "matched_property": "Plaza Azteca"}),
            TwinRecord(attributes={**attributes, "matched_property": "Metro Square"}),
        ]
        labels = _profile_labels(twins)
        self.assertEqual(len(set(labels)), 2)
        self.assertEqual(labels[1], "Tract 5, Harris County, TX (Metro Square)")
        self.assertEqual(_profile_labels(self.dataset.tracts[:1]), ["Tract 1, Cook County, IL"])


class ComparisonPanelTests(unittest.TestCase):
    def setUp(self) -> None:
        self.dataset = _dataset()
        self.context = build_context(self.dataset.tracts, self.dataset.twins, self.dataset.benchmarks)

    def test_benchmark_panel_shows_profile_values(self) -> None:
        title, rows = _comparison_panel(self.dataset, self.context, "demographic", "Plaza Azteca")
        rows = dict(rows)
        self.assertEqual(title, "Benchmark: Plaza Azteca")
        self.assertEqual(rows["Hispanic"], "75%")
        self.assertEqual(rows["Income"], "$42K")
        self.assertEqual(rows["Pop Density"], "—")
        self.assertIn("Blue Collar", rows)

    def test_benchmark_panel_titles_per_view(self) -> None:
        title, rows = _comparison_panel(self.dataset, self.context, "hotzones", "Metro Square")
        self.assertEqual(title, "Indexed to: Metro Square")
        self.assertEqual(dict(rows)["Algorithm"], "DBSCAN")
        title, rows = _comparison_panel(self.dataset, self.context, "twins", "Metro Square")
        self.assertEqual(title, "Metro Square")
        self.assertEqual(dict(rows)["Algorithm"], "Cosine Sim")

    def test_benchmark_panel_uses_short_name(self) -> None:
        benchmarks = (
            Benchmark(attributes={"name": "Plaza Azteca (Austin)", "type": "Hispanic Value", "pct_hispanic": 70, "med_hh_income": 45000}),
            Benchmark(attributes={"name": "Metro Square", "type": "Urban Core", "pct_hispanic": 20, "med_hh_income": 90000}),
        )
        dataset = AtlasDataset(benchmarks=benchmarks)
        context = build_context((), (), benchmarks)
        title, rows = _comparison_panel(dataset, context, "twins", "Plaza Azteca (Austin)")
        self.assertEqual(title, "Plaza Azteca")
        self.assertEqual(dict(rows)["Hispanic"], "70%")

        title, rows = _comparison_panel(dataset, context, "twins", COMPOSITE)
        rows = dict(rows)
        self.assertEqual(title, "Portfolio DNA")
        self.assertEqual(rows["Benchmarks"], "2")
        self.assertEqual(rows["Hispanic Value Avg"], "70%")
        self.assertEqual(rows["Avg Income (HV)"], "$45K")
        self.assertEqual(rows["Features"], "21-dim")

    def test_composite_zone_panel_surveys_clusters(self) -> None:
        title, rows = _comparison_panel(self.dataset, self.context, "hotzones", COMPOSITE)
        self.assertEqual(title, "DBSCAN Cluster Survey")
        self.assertEqual(
            rows,
            [("Clusters", "2"), ("Solo Zones", "1"), ("Total Pop", "35,000"), ("Total Tracts", "9")],
        )

    def test_composite_demographic_panel_shows_portfolio_ranges(self) -> None:
        title, rows = _comparison_panel(self.dataset, self.context, "demographic", COMPOSITE)
        self.assertEqual(title, "Portfolio Benchmark")
        self.assertEqual(dict(rows)["Home Value"], "$165–425K")

    def test_twin_panel_is_empty_without_benchmarks(self) -> None:
        _, rows = _comparison_panel(AtlasDataset(), build_context((), (), ()), "twins", COMPOSITE)
        self.assertEqual(rows, [])


if __name__ == "__main__":
    unittest.main()
