"""
Unit Tests for the Aggregation Engine
Tests for: flattening, pivot, grand totals, time buckets, dashboard summary, death audit analytics
"""
import copy
from datetime import date

import pytest

from services.aggregation import (
    CURRENT_ID, MODE_MONTHLY, MODE_QUARTERLY, MODE_SIX_MONTHLY, MODE_YEARLY, AGGREGATION_MODES,
    PIVOT_DIMENSIONS, AGE_BANDS, FlatRecord,
    draft_has_data, collect_reports, flatten_reports, pivot, grand_totals,
    month_index, quarter_label, half_year_label, bucket_key, bucket_reports, merge_reports,
    default_selection, find_bucket, dashboard_summary, admissions_by_month,
    parse_age, age_band, age_histogram, gender_counts, split_diagnoses, diagnosis_frequency, death_trend
)


def flat(disease, admissions, deaths, month="January", year="2024"):
    """Flat record with every admission/death counted as under five"""
    return FlatRecord(
        disease=disease, month=month, year=year,
        admissions=admissions, deaths=deaths,
        u5_admissions=admissions, o5_admissions=0,
        u5_deaths=deaths, o5_deaths=0,
    )


def counts_by_name(report):
    return {
        e.name: (e.admissions_u5, e.admissions_o5, e.deaths_u5, e.deaths_o5)
        for e in report.entries
    }


class TestDraftInclusion:
    """Test which reports take part in aggregation"""

    def test_all_zero_draft_is_excluded(self, make_report):
        """Test an all-zero draft contributes nothing"""
        history = [make_report(counts={"Malaria": (1, 0, 0, 0)})]
        draft = make_report("current", counts={"Malaria": (0, 0, 0, 0), "Measles": (0, 0, 0, 0)})

        assert not draft_has_data(draft)
        assert collect_reports(history, draft) == history
        assert len(flatten_reports(history, draft)) == 1
        assert len(bucket_reports(history, draft, MODE_MONTHLY)) == 1

    def test_draft_included_once_any_count_is_nonzero(self, make_report):
        """Test a single nonzero field brings the draft in"""
        draft = make_report("current", counts={"Malaria": (0, 0, 0, 1)})

        assert draft_has_data(draft)
        reports = collect_reports([], draft)
        assert [r.id for r in reports] == [CURRENT_ID]
        assert len(flatten_reports([], draft)) == 1

    def test_missing_draft(self, make_report):
        """Test None draft is allowed"""
        history = [make_report(counts={"Malaria": (1, 0, 0, 0)})]
        assert collect_reports(history, None) == history
        assert not draft_has_data(None)


class TestFlattening:
    """Test flattening reports into per-disease records"""

    def test_zero_entries_are_dropped(self, make_report):
        """Test all-zero disease lines are not emitted"""
        report = make_report(counts={"Malaria": (3, 1, 1, 0), "Measles": (0, 0, 0, 0)})
        records = flatten_reports([report])

        assert len(records) == 1
        record = records[0]
        assert record.disease == "Malaria"
        assert record.month == "January"
        assert record.year == "2024"
        assert record.admissions == 4
        assert record.deaths == 1
        assert (record.u5_admissions, record.o5_admissions, record.u5_deaths, record.o5_deaths) == (3, 1, 1, 0)

    def test_totals_equal_sub_count_sums(self, make_report):
        """Test total admissions/deaths equal u5 + o5 for every report"""
        report = make_report(counts={"Malaria": (3, 1, 2, 0), "Measles": (5, 2, 0, 1), "Cholera": (0, 0, 1, 1)})
        records = flatten_reports([report])

        assert sum(r.admissions for r in records) == sum(e.admissions_u5 + e.admissions_o5 for e in report.entries)
        assert sum(r.deaths for r in records) == sum(e.deaths_u5 + e.deaths_o5 for e in report.entries)
        assert dashboard_summary(report).total_admissions == 11
        assert dashboard_summary(report).total_deaths == 5

    def test_empty_input(self):
        """Test empty collections give empty output"""
        assert flatten_reports([]) == []


class TestPivot:
    """Test grouping flat records"""

    def test_group_by_disease_example(self):
        """Test the Malaria/Diarrhea example"""
        records = [flat("Malaria", 4, 1), flat("Malaria", 2, 0), flat("Diarrhea", 1, 0)]

        rows = pivot(records, "disease", "admissions")

        assert [(r.label, r.admissions, r.deaths) for r in rows] == [("Malaria", 6, 1), ("Diarrhea", 1, 0)]
        totals = grand_totals(rows)
        assert (totals.admissions, totals.deaths) == (7, 1)
        assert totals.label == "Total"

    def test_sort_by_deaths(self):
        """Test rows are ordered by the chosen metric"""
        records = [flat("Malaria", 10, 0), flat("Sepsis", 1, 3)]
        rows = pivot(records, "disease", "deaths")
        assert [r.label for r in rows] == ["Sepsis", "Malaria"]

    def test_sort_is_stable(self):
        """Test groups with equal metric keep first-encountered order"""
        records = [flat("Anaemia", 2, 0), flat("Burns", 5, 0), flat("Cholera", 2, 0), flat("Asthma", 2, 0)]

        rows = pivot(records, "disease", "admissions")

        assert [r.label for r in rows] == ["Burns", "Anaemia", "Cholera", "Asthma"]

    def test_stable_under_deaths_ties(self):
        """Test equal deaths keep encounter order too"""
        records = [flat("Zeta", 1, 1), flat("Alpha", 9, 1)]
        rows = pivot(records, "disease", "deaths")
        assert [r.label for r in rows] == ["Zeta", "Alpha"]

    @pytest.mark.parametrize("dimension", PIVOT_DIMENSIONS)
    def test_grand_totals_cross_check(self, dimension):
        """Test grand totals equal the sums over flat records for every grouping"""
        records = [
            flat("Malaria", 4, 1, "January", "2023"),
            flat("Malaria", 2, 0, "February", "2024"),
            flat("Diarrhea", 1, 0, "January", "2024"),
            FlatRecord("Sepsis", "March", "2024", 7, 2, 3, 4, 1, 1),
        ]

        totals = grand_totals(pivot(records, dimension, "admissions"))
        direct = grand_totals(records)

        for column in ("admissions", "deaths", "u5_admissions", "o5_admissions", "u5_deaths", "o5_deaths"):
            assert getattr(totals, column) == getattr(direct, column) == sum(getattr(r, column) for r in records)

    def test_keys_are_case_sensitive(self):
        """Test no normalisation of group keys"""
        records = [flat("Malaria", 1, 0, month="January"), flat("Malaria", 1, 0, month="january")]
        rows = pivot(records, "month", "admissions")
        assert [r.label for r in rows] == ["January", "january"]

    def test_group_by_year(self):
        records = [flat("A", 1, 0, year="2023"), flat("B", 3, 0, year="2024"), flat("C", 1, 1, year="2023")]
        rows = pivot(records, "year", "admissions")
        assert [(r.label, r.admissions, r.deaths) for r in rows] == [("2024", 3, 0), ("2023", 2, 1)]

    def test_empty_records(self):
        """Test empty input gives no rows and zero totals"""
        assert pivot([], "disease", "admissions") == []
        totals = grand_totals([])
        assert (totals.admissions, totals.deaths) == (0, 0)

    def test_invalid_arguments(self):
        """Test unknown dimension or metric is rejected"""
        with pytest.raises(ValueError):
            pivot([], "ward", "admissions")
        with pytest.raises(ValueError):
            pivot([], "disease", "referrals")

    def test_repeatable(self):
        """Test same input gives identical output"""
        records = [flat("Malaria", 4, 1), flat("Diarrhea", 4, 0), flat("Malaria", 2, 0)]
        assert pivot(records, "disease", "admissions") == pivot(records, "disease", "admissions")


class TestBucketLabels:
    """Test quarter and half-year rules"""

    @pytest.mark.parametrize("month,quarter,half", [
        ("January", "Q1", "H1 (Jan-Jun)"),
        ("March", "Q1", "H1 (Jan-Jun)"),
        ("April", "Q2", "H1 (Jan-Jun)"),
        ("June", "Q2", "H1 (Jan-Jun)"),
        ("July", "Q3", "H2 (Jul-Dec)"),
        ("September", "Q3", "H2 (Jul-Dec)"),
        ("October", "Q4", "H2 (Jul-Dec)"),
        ("December", "Q4", "H2 (Jul-Dec)"),
    ])
    def test_month_rules(self, month, quarter, half):
        assert quarter_label(month) == quarter
        assert half_year_label(month) == half

    def test_unknown_month(self):
        """Test unknown month names fall in the first quarter and half"""
        assert month_index("Smarch") == -1
        assert quarter_label("Smarch") == "Q1"
        assert half_year_label("Smarch") == "H1 (Jan-Jun)"

    def test_bucket_keys(self, make_report):
        report = make_report(month="August", year="2024")
        assert bucket_key(report, MODE_QUARTERLY) == "Q3 2024"
        assert bucket_key(report, MODE_SIX_MONTHLY) == "H2 (Jul-Dec) 2024"
        assert bucket_key(report, MODE_YEARLY) == "2024"


class TestTimeBuckets:
    """Test rolling whole reports into time buckets"""

    def test_malaria_quarter_example(self, make_report):
        """Test two Malaria reports in one quarter merge their counts"""
        history = [
            make_report("r1", "January", "2024", {"Malaria": (3, 1, 0, 0)}),
            make_report("r2", "February", "2024", {"Malaria": (2, 0, 0, 0)}),
        ]

        buckets = bucket_reports(history, None, MODE_QUARTERLY)

        assert len(buckets) == 1
        assert buckets[0].label == "Q1 2024"
        merged = buckets[0].entries[0]
        assert (merged.admissions_u5, merged.admissions_o5) == (5, 1)

    @pytest.mark.parametrize("mode", AGGREGATION_MODES)
    def test_single_report_bucketing_is_identity(self, make_report, mode):
        """Test one report alone buckets to itself"""
        report = make_report(
            "r1", "May", "2024",
            {"Malaria": (3, 1, 1, 0), "Measles": (0, 2, 0, 0)},
            total_inpatient_days=40, referrals_from_hc=3, referrals_to_hospital=1, ward_rounds=8, abscondees=2,
        )

        buckets = bucket_reports([report], None, mode)

        assert len(buckets) == 1
        assert buckets[0].metadata == report.metadata
        assert counts_by_name(buckets[0]) == counts_by_name(report)
        assert [e.name for e in buckets[0].entries] == [e.name for e in report.entries]

    def test_disjoint_diseases_union(self, make_report):
        """Test merging disjoint disease names keeps each unchanged"""
        history = [
            make_report("r1", "July", "2024", {"Malaria": (3, 1, 1, 0)}),
            make_report("r2", "August", "2024", {"Measles": (0, 2, 0, 1), "Burns": (1, 0, 0, 0)}),
        ]

        buckets = bucket_reports(history, None, MODE_SIX_MONTHLY)

        assert len(buckets) == 1
        assert counts_by_name(buckets[0]) == {
            "Malaria": (3, 1, 1, 0),
            "Measles": (0, 2, 0, 1),
            "Burns": (1, 0, 0, 0),
        }

    def test_metadata_counters_are_summed(self, make_report):
        """Test operational counters add up across the bucket"""
        history = [
            make_report("r1", "January", "2024", {}, ward_name="Peadiatric Ward", total_inpatient_days=10,
                        referrals_from_hc=1, referrals_to_hospital=2, ward_rounds=4, abscondees=0),
            make_report("r2", "December", "2024", {}, ward_name="Other Ward", total_inpatient_days=5,
                        referrals_from_hc=3, referrals_to_hospital=0, ward_rounds=4, abscondees=1),
        ]

        bucket = bucket_reports(history, None, MODE_YEARLY)[0]

        assert bucket.label == "2024"
        assert bucket.metadata.total_inpatient_days == 15
        assert bucket.metadata.referrals_from_hc == 4
        assert bucket.metadata.referrals_to_hospital == 2
        assert bucket.metadata.ward_rounds == 8
        assert bucket.metadata.abscondees == 1
        assert bucket.metadata.ward_name == "Peadiatric Ward"

    def test_buckets_in_first_appearance_order(self, make_report):
        history = [
            make_report("r1", "October", "2024", {"Malaria": (1, 0, 0, 0)}),
            make_report("r2", "January", "2024", {"Malaria": (1, 0, 0, 0)}),
            make_report("r3", "November", "2024", {"Malaria": (1, 0, 0, 0)}),
        ]
        buckets = bucket_reports(history, None, MODE_QUARTERLY)
        assert [b.label for b in buckets] == ["Q4 2024", "Q1 2024"]

    def test_monthly_labels_mark_the_draft(self, make_report):
        """Test the draft bucket is labelled as current"""
        history = [make_report("r1", "May", "2024", {"Malaria": (1, 0, 0, 0)})]
        draft = make_report("current", "June", "2024", {"Malaria": (2, 0, 0, 0)})

        buckets = bucket_reports(history, draft, MODE_MONTHLY)

        assert [b.label for b in buckets] == ["May 2024", "June 2024 (Current)"]
        assert [b.id for b in buckets] == ["r1", CURRENT_ID]

    def test_inputs_are_not_mutated(self, make_report):
        """Test bucketing leaves history and draft untouched"""
        history = [
            make_report("r1", "January", "2024", {"Malaria": (3, 1, 0, 0)}),
            make_report("r2", "February", "2024", {"Malaria": (2, 0, 0, 0)}),
        ]
        draft = make_report("current", "March", "2024", {"Malaria": (1, 1, 1, 1)})
        before = copy.deepcopy((history, draft))

        for mode in AGGREGATION_MODES:
            bucket_reports(history, draft, mode)

        assert (history, draft) == before

    def test_repeatable(self, make_report):
        """Test recomputation gives identical output"""
        history = [make_report("r1", "January", "2024", {"Malaria": (3, 1, 0, 0)})]
        assert bucket_reports(history, None, MODE_QUARTERLY) == bucket_reports(history, None, MODE_QUARTERLY)

    def test_empty(self):
        for mode in AGGREGATION_MODES:
            assert bucket_reports([], None, mode) == []

    def test_unknown_mode(self):
        with pytest.raises(ValueError):
            bucket_reports([], None, "weekly")

    def test_merge_reports_ids(self, make_report):
        merged = merge_reports("Q1 2024", [make_report("r1", counts={"Malaria": (1, 0, 0, 0)})])
        assert merged.id == "agg-Q1 2024"
        assert merged.entries[0].id == "agg-Malaria"


class TestDefaultSelection:
    """Test which bucket is selected after recomputation"""

    def test_monthly_prefers_current_draft(self, make_report):
        history = [make_report("r1", "May", "2024", {"Malaria": (1, 0, 0, 0)}),
                   make_report("r2", "June", "2024", {"Malaria": (1, 0, 0, 0)})]
        draft = make_report("current", "April", "2024", {"Malaria": (1, 0, 0, 0)})

        buckets = bucket_reports(history, draft, MODE_MONTHLY)
        assert default_selection(buckets, MODE_MONTHLY) == CURRENT_ID

    def test_monthly_without_draft_takes_latest(self, make_report):
        history = [make_report("r1", "May", "2024", {"Malaria": (1, 0, 0, 0)}),
                   make_report("r2", "June", "2024", {"Malaria": (1, 0, 0, 0)})]
        buckets = bucket_reports(history, None, MODE_MONTHLY)
        assert default_selection(buckets, MODE_MONTHLY) == "r2"

    def test_other_modes_take_latest_bucket(self, make_report):
        history = [make_report("r1", "January", "2024", {"Malaria": (1, 0, 0, 0)})]
        draft = make_report("current", "July", "2024", {"Malaria": (1, 0, 0, 0)})

        buckets = bucket_reports(history, draft, MODE_QUARTERLY)

        assert default_selection(buckets, MODE_QUARTERLY) == "agg-Q3 2024"

    def test_empty(self):
        assert default_selection([], MODE_MONTHLY) is None
        assert find_bucket([], "anything") is None

    def test_find_bucket_falls_back_to_first(self, make_report):
        buckets = bucket_reports([make_report("r1", counts={"Malaria": (1, 0, 0, 0)})], None, MODE_MONTHLY)
        assert find_bucket(buckets, "gone").id == "r1"


class TestDashboardSummary:
    """Test dashboard headline numbers"""

    def test_summary(self, make_report):
        report = make_report(
            counts={"Malaria": (3, 1, 2, 0), "Measles": (0, 0, 0, 0), "Sepsis": (1, 5, 0, 3)},
            referrals_from_hc=2, referrals_to_hospital=1, abscondees=0, total_inpatient_days=30,
        )

        summary = dashboard_summary(report)

        assert summary.total_u5_admissions == 4
        assert summary.total_o5_admissions == 6
        assert summary.total_admissions == 10
        assert summary.total_deaths == 5
        assert [e.name for e in summary.top_admissions] == ["Sepsis", "Malaria"]
        assert [e.name for e in summary.top_deaths] == ["Sepsis", "Malaria"]
        assert summary.operational_metrics == [
            ("Ref. In", 2), ("Ref. Out", 1), ("Abscondees", 0), ("In-Patient Days", 30)
        ]
        assert summary.age_breakdown == [("Under 5", 4), ("Over 5", 6)]

    def test_zero_age_slices_removed(self, make_report):
        report = make_report(counts={"Malaria": (3, 0, 0, 0)})
        assert dashboard_summary(report).age_breakdown == [("Under 5", 3)]

    def test_top_n(self, make_report):
        report = make_report(counts={f"Disease {i}": (i + 1, 0, 0, 0) for i in range(15)})
        summary = dashboard_summary(report)
        assert len(summary.top_admissions) == 10
        assert summary.top_admissions[0].name == "Disease 14"

    def test_admissions_by_month(self, make_report):
        reports = [
            make_report("r1", "June", "2024", {"Malaria": (3, 1, 0, 0)}),
            make_report("r2", "June", "2024", {"Measles": (2, 0, 0, 0)}),
            make_report("r3", "Smarch", "2024", {"Measles": (2, 0, 0, 0)}),
            make_report("r4", "July", "", {"Measles": (2, 0, 0, 0)}),
        ]
        assert admissions_by_month(reports) == {(2024, 6): 6}


class TestAgeBands:
    """Test free-text age parsing"""

    def test_example_ages(self):
        """Test the documented example"""
        assert [age_band(a) for a in ["6 months", "45", "7", "200"]] == ["<10", "40-49", "<10", "80+"]

    def test_unparseable_age_excluded(self, make_audit):
        """Test unparseable ages are skipped, not counted as zero"""
        assert age_band("unknown") is None
        audits = [make_audit(age=a) for a in ["unknown", "", "45"]]
        histogram = age_histogram(audits)
        assert sum(histogram.values()) == 1
        assert histogram["40-49"] == 1
        assert histogram["<10"] == 0

    @pytest.mark.parametrize("age,band", [
        ("30 months", "<10"),
        ("2 WKS", "<10"),
        ("3 days", "<10"),
        ("9", "<10"),
        ("10", "10-19"),
        ("19", "10-19"),
        ("79", "70-79"),
        ("80", "80+"),
        ("12 years", "10-19"),
    ])
    def test_band_edges(self, age, band):
        assert age_band(age) == band

    def test_parse_age(self):
        assert parse_age("12 years") == 12
        assert parse_age("abc") is None

    def test_histogram_has_every_band(self):
        histogram = age_histogram([])
        assert list(histogram) == AGE_BANDS
        assert sum(histogram.values()) == 0


class TestDiagnoses:
    """Test diagnosis splitting and frequency"""

    def test_split_example(self):
        assert split_diagnoses("Malaria; Severe anemia\nSepsis") == ["Malaria", "Severe anemia", "Sepsis"]

    def test_empty_fragments_dropped(self):
        assert split_diagnoses(" ,Malaria,, ;\n") == ["Malaria"]
        assert split_diagnoses("") == []

    def test_frequency_ties_keep_first_seen(self, make_audit):
        audits = [
            make_audit(diagnosis="Sepsis, Malaria"),
            make_audit(diagnosis="Malaria; Anaemia"),
            make_audit(diagnosis="Anaemia"),
            make_audit(diagnosis="Burns"),
        ]
        assert diagnosis_frequency(audits) == [("Malaria", 2), ("Anaemia", 2), ("Sepsis", 1), ("Burns", 1)]

    def test_top_ten(self, make_audit):
        audits = [make_audit(diagnosis=f"Diagnosis {i}") for i in range(12)]
        assert len(diagnosis_frequency(audits)) == 10

    def test_gender_counts(self, make_audit):
        audits = [make_audit(sex="Female"), make_audit(sex="Male"), make_audit(sex="Female"), make_audit(sex="Other")]
        assert gender_counts(audits) == {"Female": 2, "Male": 1}


class TestDeathTrend:
    """Test deaths per month"""

    def test_counts_per_month(self, make_audit):
        audits = [
            make_audit(death_date="2024-07-02"),
            make_audit(death_date="2024-06-15"),
            make_audit(death_date="2024-06-01"),
            make_audit(death_date="not a date"),
            make_audit(death_date=""),
        ]
        assert death_trend(audits) == [("Jun 24", 2.0), ("Jul 24", 1.0)]

    def test_date_range_is_inclusive(self, make_audit):
        audits = [
            make_audit(death_date="2024-05-31"),
            make_audit(death_date="2024-06-01"),
            make_audit(death_date="2024-06-30"),
            make_audit(death_date="2024-07-01"),
        ]
        trend = death_trend(audits, start=date(2024, 6, 1), end=date(2024, 6, 30))
        assert trend == [("Jun 24", 2.0)]

    def test_per_thousand_admissions(self, make_audit):
        audits = [make_audit(death_date="2024-06-03"), make_audit(death_date="2024-06-20"),
                  make_audit(death_date="2024-07-09")]
        trend = death_trend(audits, admissions={(2024, 6): 400})
        assert trend == [("Jun 24", 5.0), ("Jul 24", 0.0)]

    def test_empty(self):
        assert death_trend([]) == []
