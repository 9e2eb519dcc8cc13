"""
Tests for control-stream validation and the randomness audit.

Run with: python -m pytest tests/test_controls.py -v
"""

import pytest
import numpy as np
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from intention_stats.core.records import Block, Session
from intention_stats.analysis.controls import (
    bit_contingency,
    check_session,
    control_rate_test,
    validate_controls,
)
from intention_stats.analysis.randomness import (
    audit_bits,
    audit_sessions,
    cumulative_range,
    hurst_approx,
    longest_run_test,
    monobit_test,
    nist_runs_test,
)


def paired_session(session_id, subject, control, blocks=1):
    """Session whose bit streams are split evenly over `blocks` blocks."""
    size = len(subject) // blocks
    parts = []
    for i in range(blocks):
        s = tuple(subject[i * size:(i + 1) * size])
        c = tuple(control[i * size:(i + 1) * size])
        parts.append(Block(index=i, n=size, subject_hits=sum(s), control_hits=sum(c),
                           subject_bits=s, control_bits=c))
    return Session(session_id=session_id, blocks=tuple(parts))


class TestContingency:
    """Tests for the paired-bit 2x2 table."""

    def test_counts(self):
        assert bit_contingency([1, 1, 0, 0], [1, 0, 1, 0]) == (1, 1, 1, 1)
        assert bit_contingency([1, 1, 1], [1, 1, 0]) == (2, 1, 0, 0)

    def test_length_mismatch(self):
        with pytest.raises(ValueError):
            bit_contingency([1, 0], [1])


class TestSessionChecks:
    """Tests for per-session control validation."""

    def test_alternating_streams_are_flagged(self):
        """Test perfectly anti-correlated halves of one fetch."""
        session = paired_session('alt', [0, 1] * 50, [1, 0] * 50)
        check = check_session(session)
        assert check.paired_bits == 100
        assert check.correlation == pytest.approx(-1.0)
        assert check.chi_square.p_value < 0.001
        assert check.suspected_dependence is True

    def test_independent_streams_pass(self):
        """Test a balanced table: r = 0, chi-square p = 1."""
        session = paired_session('ind', [1, 1, 0, 0] * 25, [1, 0, 1, 0] * 25)
        check = check_session(session)
        assert check.correlation == pytest.approx(0.0)
        assert check.chi_square.p_value == pytest.approx(1.0)
        assert check.suspected_dependence is False

    def test_health_score(self):
        """Test completion and control proximity to chance."""
        session = Session(session_id='h', blocks=(
            Block(index=0, n=100, subject_hits=60, control_hits=50),
            Block(index=1, n=100, subject_hits=60, control_hits=50),
        ))
        check = check_session(session)
        assert check.control_rate == pytest.approx(0.5)
        assert check.data_completion == 1.0
        assert check.health_score == pytest.approx(1.0)
        assert check.critical_ratio == pytest.approx(0.1 / 0.001)
        assert check.correlation is None
        assert check.chi_square is None
        assert check.suspected_dependence is False

    def test_health_score_partial(self):
        session = Session(session_id='p', blocks=(
            Block(index=0, n=100, subject_hits=50, control_hits=40),
            Block(index=1, n=100, subject_hits=50),
        ))
        check = check_session(session)
        assert check.data_completion == 0.5
        assert check.control_trials == 100
        assert check.health_score == pytest.approx(0.6 * 0.5 + 0.4 * 0.8)

    def test_cross_correlation_on_block_rates(self):
        rng = np.random.default_rng(9)
        blocks = tuple(
            Block(index=i, n=100, subject_hits=int(h), control_hits=int(h))
            for i, h in enumerate(rng.binomial(100, 0.5, size=16))
        )
        check = check_session(Session(session_id='c', blocks=blocks))
        assert check.cross_correlation['lag'] == 0
        assert check.cross_correlation['max_corr'] == pytest.approx(1.0)
        assert check.cross_correlation['max_lag'] == 4

    def test_control_rate_test(self):
        result = control_rate_test(60, 100)
        assert result.statistic == pytest.approx(2.0)
        assert result.test_name == 'control_z'
        assert control_rate_test(0, 0) is None


class TestValidation:
    """Tests for validation across sessions."""

    def test_flagged_sessions(self):
        sessions = [
            paired_session('alt', [0, 1] * 50, [1, 0] * 50),
            paired_session('ind', [1, 1, 0, 0] * 25, [1, 0, 1, 0] * 25),
        ]
        validation = validate_controls(sessions)
        assert validation.flagged_sessions == ('alt',)
        assert validation.control_trials == 200
        assert validation.control_hits == 100
        assert validation.control_rate == pytest.approx(0.5)
        assert validation.pooled_chi_square is not None
        assert len(validation.sessions) == 2
        assert validation.to_dict()['flagged_sessions'] == ('alt',)

    def test_no_sessions(self):
        validation = validate_controls([])
        assert validation.control_rate is None
        assert validation.control_z is None
        assert validation.mean_health_score is None
        assert validation.flagged_sessions == ()


class TestNist:
    """Tests for the NIST SP 800-22 subset."""

    def test_monobit(self):
        assert monobit_test([0, 1] * 50).p_value == pytest.approx(1.0)
        assert monobit_test([1] * 100).p_value < 1e-6
        assert monobit_test([1] * 50) is None

    def test_runs(self):
        """Test oscillating bits fail and biased bits skip the test."""
        alternating = nist_runs_test([0, 1] * 50)
        assert alternating.statistic == 100
        assert alternating.p_value < 0.01
        biased = nist_runs_test([1] * 100)
        assert biased.p_value == 0.0
        assert biased.extras['prerequisite_failed'] is True

    def test_runs_balanced_blocks(self):
        """Test runs of length two match the expected count."""
        result = nist_runs_test([1, 1, 0, 0] * 25)
        assert result.statistic == 50
        assert result.p_value == pytest.approx(1.0)

    def test_longest_run(self):
        result = longest_run_test([0, 1] * 64)
        assert result.df == 3
        assert result.extras['block_length'] == 8
        assert result.extras['counts'] == [16, 0, 0, 0]
        assert result.p_value < 0.01
        assert longest_run_test([0, 1] * 10) is None


class TestCoherence:
    """Tests for walk range and Hurst estimates."""

    def test_cumulative_range(self):
        assert cumulative_range([1, 1, 0]) == 2
        assert cumulative_range([0, 0, 0]) == 3
        assert cumulative_range([]) == 0

    def test_hurst(self):
        assert hurst_approx([1, 0] * 5) == 0.5
        value = hurst_approx(list(np.random.default_rng(10).integers(0, 2, size=500)))
        assert 0.0 <= value <= 1.0

    def test_audit(self):
        report = audit_bits([0, 1] * 64)
        assert set(report) == {'bits', 'monobit', 'runs', 'longest_run',
                               'cumulative_range', 'hurst'}
        assert report['bits'] == 128

    def test_audit_sessions(self):
        sessions = [paired_session('a', [1, 0] * 60, [0, 1] * 60)]
        report = audit_sessions(sessions)
        assert report['subject']['bits'] == 120
        assert report['control']['bits'] == 120
        assert report['control']['longest_run'] is None
