"""Tests for finding aggregation and risk scoring."""

import itertools

import pytest
from pydantic import ValidationError

from bugshield.aggregator import ScanAccumulator, ScanState, calculate_risk_score, count_severities
from bugshield.errors import ScanStateError
from bugshield.models import RepositoryInfo, ScanResult, Severity, SeverityCounts, SourceUnit, UnitFailure


def _unit(path: str) -> SourceUnit:
    return SourceUnit(path=path, content="", size=0)


class TestRiskScore:
    """Test the weighted risk score."""

    def test_reference_counts(self):
        """Test 1 critical, 2 high, 1 medium scores 70."""
        counts = SeverityCounts(critical=1, high=2, medium=1, low=0)
        assert calculate_risk_score(counts) == 70

    def test_no_findings_scores_zero(self):
        assert calculate_risk_score(SeverityCounts()) == 0

    def test_single_low_scores_ten(self):
        assert calculate_risk_score(SeverityCounts(low=1)) == 10

    def test_all_critical_is_capped(self):
        assert calculate_risk_score(SeverityCounts(critical=5)) == 100

    def test_rounds_half_up(self):
        """Test 32.5 rounds to 33, not to the even neighbour."""
        # (10 + 1 + 1 + 1) / 4 * 10 = 32.5
        assert calculate_risk_score(SeverityCounts(critical=1, low=3)) == 33

    def test_bounds(self):
        """Test the score stays in range and is zero only without findings."""
        for c, h, m, l in itertools.product(range(4), repeat=4):
            score = calculate_risk_score(SeverityCounts(critical=c, high=h, medium=m, low=l))
            assert 0 <= score <= 100
            assert (score == 0) == (c + h + m + l == 0)

    def test_severity_monotonicity(self):
        """Test moving a finding to a higher severity never lowers the score."""
        order = list(Severity)
        for total in range(1, 6):
            for combo in itertools.combinations_with_replacement(order, total):
                base = count_severities_from(combo)
                for i, severity in enumerate(combo):
                    rank = order.index(severity)
                    if rank == 0:
                        continue
                    raised = combo[:i] + (order[rank - 1],) + combo[i + 1:]
                    assert calculate_risk_score(count_severities_from(raised)) >= calculate_risk_score(base)


def count_severities_from(severities) -> SeverityCounts:
    values = {s.name: 0 for s in Severity}
    for severity in severities:
        values[severity.name] += 1
    return SeverityCounts(**values)


class TestScanAccumulator:
    """Test the scan state machine and merge step."""

    def test_assigns_sequential_ids_in_unit_order(self, make_finding):
        """Test ids and file stamps follow the order units are added."""
        accumulator = ScanAccumulator("scan42")
        accumulator.add_unit(_unit("a.php"), [make_finding(line=3), make_finding(line=9)])
        accumulator.add_unit(_unit("b.js"), [make_finding(line=1)])
        result = accumulator.finalize()

        assert [f.id for f in result.findings] == ["scan42-1", "scan42-2", "scan42-3"]
        assert [f.file for f in result.findings] == ["a.php", "a.php", "b.js"]

    def test_matcher_findings_are_not_mutated(self, make_finding):
        """Test stamping produces new copies."""
        original = make_finding()
        accumulator = ScanAccumulator("s")
        accumulator.add_unit(_unit("a.js"), [original])
        result = accumulator.finalize()

        assert original.id is None
        assert original.file is None
        assert result.findings[0].id == "s-1"

    def test_failures_are_counted_as_skipped(self, make_finding):
        """Test failed units count towards total and skipped but add no findings."""
        accumulator = ScanAccumulator("s")
        accumulator.add_unit(_unit("a.js"), [make_finding()])
        accumulator.add_failure(UnitFailure(path="b.js", stage="fetch", reason="Not Found"))
        result = accumulator.finalize()

        assert result.total_files == 2
        assert result.skipped_files == 1
        assert result.skipped[0].path == "b.js"
        assert len(result.findings) == 1

    def test_tallies_and_scores(self, make_finding):
        """Test severity counts and risk score at finalize."""
        accumulator = ScanAccumulator("s")
        accumulator.add_unit(_unit("a.php"), [
            make_finding(severity=Severity.critical),
            make_finding(severity=Severity.high),
            make_finding(severity=Severity.high),
            make_finding(severity=Severity.medium),
        ])
        result = accumulator.finalize()

        assert result.severity_counts == SeverityCounts(critical=1, high=2, medium=1, low=0)
        assert result.risk_score == 70

    def test_state_transitions(self, make_finding):
        """Test CREATED -> ACCUMULATING -> FINALIZED and no way back."""
        accumulator = ScanAccumulator("s")
        assert accumulator.state == ScanState.created

        accumulator.add_unit(_unit("a.js"), [])
        assert accumulator.state == ScanState.accumulating

        result = accumulator.finalize()
        assert accumulator.state == ScanState.finalized
        assert accumulator.finalize() is result

        with pytest.raises(ScanStateError):
            accumulator.add_unit(_unit("b.js"), [make_finding()])
        with pytest.raises(ScanStateError):
            accumulator.add_failure(UnitFailure(path="c.js", stage="match", reason="boom"))

    def test_empty_scan(self):
        """Test a scan with no units finalizes to zeros."""
        result = ScanAccumulator("s").finalize()
        assert result.total_files == 0
        assert result.findings == ()
        assert result.risk_score == 0

    def test_finalized_collections_are_immutable(self, make_finding):
        """Test a stored result cannot be extended through its findings or skipped lists."""
        accumulator = ScanAccumulator("s")
        accumulator.add_unit(_unit("a.js"), [make_finding()])
        accumulator.add_failure(UnitFailure(path="b.js", stage="fetch", reason="404"))
        result = accumulator.finalize()

        assert isinstance(result.findings, tuple)
        assert isinstance(result.skipped, tuple)
        with pytest.raises(AttributeError):
            result.findings.append(make_finding())
        with pytest.raises(AttributeError):
            result.skipped.append(UnitFailure(path="c.js", stage="match", reason="boom"))
        assert len(accumulator.finalize().findings) == 1

    def test_remote_stamping(self, make_finding):
        """Test findings from a repository carry its URL and branch."""
        repository = RepositoryInfo(
            name="app",
            full_name="octo/app",
            url="https://github.com/octo/app",
            default_branch="main",
            branch="dev",
        )
        accumulator = ScanAccumulator("github-1", repository=repository, truncated_files=3)
        accumulator.add_unit(_unit("src/a.js"), [make_finding()])
        result = accumulator.finalize()

        assert result.findings[0].repository_url == "https://github.com/octo/app"
        assert result.findings[0].branch == "dev"
        assert result.truncated_files == 3
        assert result.repository.full_name == "octo/app"

    def test_requested_by_is_attribution_only(self, make_finding):
        """Test attribution does not change the computed result."""
        results = []
        for requested_by in (None, "alice"):
            accumulator = ScanAccumulator("s", requested_by=requested_by)
            accumulator.add_unit(_unit("a.js"), [make_finding()])
            results.append(accumulator.finalize())

        assert results[0].findings == results[1].findings
        assert results[0].risk_score == results[1].risk_score
        assert results[1].requested_by == "alice"


class TestScanResult:
    """Test ScanResult invariants and serialization."""

    def test_json_round_trip(self, make_result):
        """Test encoding and decoding reproduces findings, counts and score."""
        result = make_result([
            (Severity.critical, "SQL Injection"),
            (Severity.high, "Hardcoded Secret"),
            (Severity.low, "Path Traversal"),
        ])
        decoded = ScanResult.model_validate_json(result.model_dump_json())

        assert [f.model_dump() for f in decoded.findings] == [f.model_dump() for f in result.findings]
        assert decoded.severity_counts.model_dump() == result.severity_counts.model_dump()
        assert decoded.risk_score == result.risk_score
        assert decoded.model_dump() == result.model_dump()

    def test_rejects_score_without_findings(self, make_result):
        """Test a non-zero score with no findings is rejected."""
        data = make_result([]).model_dump()
        data["risk_score"] = 10
        with pytest.raises(ValidationError):
            ScanResult.model_validate(data)

    def test_rejects_mismatched_counts(self, make_result):
        """Test severity counts must agree with the findings."""
        data = make_result([(Severity.high, "XSS")]).model_dump()
        data["severity_counts"]["high"] = 2
        with pytest.raises(ValidationError):
            ScanResult.model_validate(data)

    def test_rejects_more_skipped_than_total(self, make_result):
        data = make_result([]).model_dump()
        data["skipped_files"] = 5
        with pytest.raises(ValidationError):
            ScanResult.model_validate(data)

    def test_count_severities(self, make_finding):
        counts = count_severities([make_finding(severity=Severity.low), make_finding(severity=Severity.low)])
        assert counts.model_dump() == {"critical": 0, "high": 0, "medium": 0, "low": 2}
