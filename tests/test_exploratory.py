"""
Tests for the exploratory suite: block and trial dynamics, entropy, hold durations.

Run with: python -m pytest tests/test_exploratory.py -v
"""

import math
import pytest
import numpy as np
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from intention_stats.core.config import AnalysisConfig
from intention_stats.core.records import Block, Session, TemporalEntropy, Trial
from intention_stats.analysis.aggregator import fold_session
from intention_stats.analysis.dynamics import (
    analyze_block_dynamics,
    analyze_trial_dynamics,
    block_rate_series,
    detect_damped_oscillator,
    detect_harmonic_oscillations,
    half_comparison,
    lag_autocorrelation_test,
    trial_sequences,
)
from intention_stats.analysis.entropy import (
    analyze_entropy,
    entropy_suppression_test,
    session_entropy_windows,
    temporal_entropy_k2,
    temporal_entropy_k3,
)
from intention_stats.analysis.hold import hold_duration_report


def random_block_session(rng, session_id, n_blocks=12, n=100):
    blocks = tuple(
        Block(index=i, n=n, subject_hits=int(rng.binomial(n, 0.5)),
              control_hits=int(rng.binomial(n, 0.5)))
        for i in range(n_blocks)
    )
    return Session(session_id=session_id, blocks=blocks)


def bit_session(rng, session_id, n_blocks=2, n=64):
    blocks = []
    for i in range(n_blocks):
        subject = tuple(int(b) for b in rng.integers(0, 2, size=n))
        control = tuple(int(b) for b in rng.integers(0, 2, size=n))
        blocks.append(Block(index=i, n=n, subject_hits=sum(subject),
                            control_hits=sum(control),
                            subject_bits=subject, control_bits=control))
    return Session(session_id=session_id, blocks=tuple(blocks))


class TestBlockDynamics:
    """Tests for block-level temporal analysis."""

    def test_rate_series_skips_empty_blocks(self):
        session = Session(session_id='x', blocks=(
            Block(index=0, n=10, subject_hits=5),
            Block(index=1, n=0, subject_hits=0),
            Block(index=2, n=10, subject_hits=7),
        ))
        assert block_rate_series(session) == [0.5, 0.7]

    def test_lag_test(self):
        series = [[0.1, 0.9] * 6, [0.2, 0.8] * 6, [0.3, 0.7, 0.2, 0.8] * 3]
        result = lag_autocorrelation_test(series, 1)
        assert result['count'] == 3
        assert result['mean'] < -0.5
        assert result['test'].test_name == 'one_sample_t'

    def test_lag_longer_than_series(self):
        result = lag_autocorrelation_test([[0.5, 0.6]], 3)
        assert result['count'] == 0
        assert result['mean'] is None
        assert result['test'] is None

    def test_half_comparison(self):
        """Test the split at floor(n / 2) and the paired test."""
        result = half_comparison([[0.4] * 5 + [0.6] * 5, [0.4] * 5 + [0.6] * 5])
        assert result['n'] == 2
        assert result['mean_difference'] == pytest.approx(0.2)
        assert result['test'].p_value == 1.0
        assert half_comparison([[0.5]]) is None

    def test_too_few_blocks(self):
        rng = np.random.default_rng(1)
        result = analyze_block_dynamics([random_block_session(rng, 's', n_blocks=5)])
        assert result == {'sessions': 0, 'min_blocks': 10}

    def test_full_analysis(self):
        rng = np.random.default_rng(2)
        sessions = [random_block_session(rng, f's{i}') for i in range(4)]
        result = analyze_block_dynamics(sessions)
        assert result['sessions'] == 4
        assert [r['lag'] for r in result['autocorrelation']['subject']] == [1, 2, 3, 4, 5]
        assert all(r['count'] == 4 for r in result['autocorrelation']['control'])
        assert result['sequential_differences']['count'] == 4 * 11
        assert result['turning_points']['sessions'] == 4
        assert result['runs'].num_runs >= 1
        assert len(result['per_session']) == 4
        assert result['half_comparison']['n'] == 4

    def test_lags_follow_config(self):
        rng = np.random.default_rng(3)
        sessions = [random_block_session(rng, f's{i}') for i in range(3)]
        config = AnalysisConfig(block_lags=(1, 3), min_blocks_temporal=12)
        result = analyze_block_dynamics(sessions, config)
        assert [r['lag'] for r in result['autocorrelation']['subject']] == [1, 3]


class TestOscillations:
    """Tests for harmonic and damped oscillation detection."""

    def test_harmonic_needs_ten_points(self):
        assert detect_harmonic_oscillations([0.5] * 9)['dominant_period'] == 0

    def test_harmonic_periodic_series(self):
        series = [0.5 + 0.1 * math.sin(2 * math.pi * i / 6) for i in range(48)]
        result = detect_harmonic_oscillations(series)
        assert result['dominant_period'] > 0
        assert result['coherence'] > 0.8
        assert result['dominant_freq'] == pytest.approx(1.0 / result['dominant_period'])

    def test_damped_oscillator(self):
        """Test a decaying cosine with period 8 is detected."""
        series = [1 + 0.5 * math.exp(-0.05 * i) * math.cos(2 * math.pi * i / 8)
                  for i in range(64)]
        result = detect_damped_oscillator(series)
        assert result['detected'] is True
        assert result['damping_factor'] > 0.01
        assert result['natural_freq'] == pytest.approx(0.125)
        assert result['fit_quality'] > 0.3

    def test_damped_not_detected(self):
        assert detect_damped_oscillator([0.5] * 30)['detected'] is False
        assert detect_damped_oscillator([0.1, 0.9] * 5)['detected'] is False


class TestTrialDynamics:
    """Tests for trial-level autocorrelation, runs and spectra."""

    def test_sequences_from_trial_rows(self):
        trials = tuple(Trial(subject_bit=b, control_bit=1 - b, block_index=0, trial_index=i)
                       for i, b in enumerate([1, 0, 1, 1]))
        session = Session(session_id='x', blocks=(
            Block(index=0, n=4, subject_hits=3, trials=trials),))
        subject, control = trial_sequences(session)
        assert subject == [1, 0, 1, 1]
        assert control == [0, 1, 0, 0]

    def test_no_bits(self):
        session = Session(session_id='x', blocks=(Block(index=0, n=10, subject_hits=5),))
        assert analyze_trial_dynamics([session]) == {'sessions': 0}

    def test_trial_analysis(self):
        rng = np.random.default_rng(4)
        sessions = [bit_session(rng, f's{i}') for i in range(3)]
        result = analyze_trial_dynamics(sessions)
        assert result['sessions'] == 3
        assert [r['lag'] for r in result['autocorrelation']['subject']] == [1, 2, 3, 5, 10]
        assert len(result['runs']['sessions']) == 3
        assert 0.0 <= result['runs']['rejection_rate'] <= 1.0

        spectra = result['spectral']['sessions']
        assert len(spectra) == 3
        assert spectra[0]['spectrum'].method == 'welch'
        assert spectra[0]['spectrum'].segments == 3
        assert result['spectral']['mean_peak_frequency'] is not None

    def test_short_sequences_have_no_spectrum(self):
        rng = np.random.default_rng(5)
        result = analyze_trial_dynamics([bit_session(rng, 's', n_blocks=1, n=20)])
        assert result['spectral']['sessions'] == []
        assert result['spectral']['mean_peak_frequency'] is None


class TestEntropy:
    """Tests for temporal entropy and entropy suppression."""

    def test_windows_prefer_stored_values(self):
        session = Session(
            session_id='x',
            blocks=(Block(index=0, n=4, subject_hits=2, subject_bits=(0, 1, 0, 1),
                          control_bits=(1, 1, 1, 1), control_hits=4),),
            temporal_entropy=TemporalEntropy(subject_k2=(0.3, 0.4)),
        )
        windows = session_entropy_windows(session)
        assert windows['subject_k2'] == (0.3, 0.4)
        assert windows['subject_k3'] == (0.0, 0.0, 0.0)
        assert windows['control_k2'] == (0.0, 0.0)

    def test_windows_cover_paired_trials(self):
        """Test subject windows skip blocks that have no control half."""
        session = Session(session_id='x', blocks=(
            Block(index=0, n=4, subject_hits=4, subject_bits=(1, 1, 1, 1),
                  control_bits=(0, 1, 0, 1), control_hits=2),
            Block(index=1, n=4, subject_hits=2, subject_bits=(0, 1, 0, 1)),
        ))
        windows = session_entropy_windows(session)
        assert windows['subject_k2'] == (0.0, 0.0)
        assert windows['control_k2'] == (1.0, 1.0)

    def test_windows_without_control_use_all_subject_bits(self):
        session = Session(session_id='x', blocks=(
            Block(index=0, n=4, subject_hits=4, subject_bits=(1, 1, 1, 1)),
            Block(index=1, n=4, subject_hits=2, subject_bits=(0, 1, 0, 1)),
        ))
        windows = session_entropy_windows(session)
        assert windows['subject_k2'] == (0.0, 1.0)
        assert windows['control_k2'] is None

    def test_k2(self):
        rng = np.random.default_rng(6)
        sessions = [bit_session(rng, f's{i}') for i in range(5)]
        config = AnalysisConfig(n_permutations=500, n_bootstrap=200)
        result = temporal_entropy_k2(sessions, config)
        assert result['n'] == 5
        assert result['test'].test_name == 'paired_t'
        assert result['control']['n'] == 5
        assert result['direction'] in ('increase', 'decrease', 'none')
        assert result['permutation'].extras['n_permutations'] == 500

    def test_k2_without_bits(self):
        session = Session(session_id='x', blocks=(Block(index=0, n=10, subject_hits=5),))
        assert temporal_entropy_k2([session]) is None

    def test_k3_corrections_are_within_test(self):
        rng = np.random.default_rng(7)
        sessions = [bit_session(rng, f's{i}') for i in range(6)]
        result = temporal_entropy_k3(sessions)
        assert result['n'] == 6
        assert result['holm'].k == 3
        assert result['holm'].family == 'exploratory'
        assert result['fdr'].method == 'benjamini_hochberg'
        assert result['linear_trend'].test_name == 'linear_contrast_t'
        assert set(result['contrasts']) == {'early_vs_middle', 'early_vs_late', 'middle_vs_late'}

    def test_suppression(self):
        summaries = []
        for i, bits in enumerate([(1, 1, 1, 0), (1, 1, 0, 0), (1, 0, 0, 0)]):
            session = Session(session_id=str(i), blocks=(
                Block(index=0, n=4, subject_hits=sum(bits), subject_bits=bits,
                      control_bits=(0, 1, 0, 1), control_hits=2),))
            summaries.append(fold_session(session))
        result = entropy_suppression_test(summaries)
        assert result['n'] == 3
        assert result['control_mean'] == pytest.approx(1.0)
        assert result['subject_mean'] < 1.0
        assert entropy_suppression_test(summaries[:1]) is None

    def test_analyze_entropy_keys(self):
        rng = np.random.default_rng(8)
        sessions = [bit_session(rng, f's{i}') for i in range(3)]
        summaries = [fold_session(s) for s in sessions]
        config = AnalysisConfig(n_permutations=200, n_bootstrap=100)
        result = analyze_entropy(sessions, summaries, config)
        assert set(result) == {'temporal_k2', 'temporal_k3', 'suppression'}


class TestHoldDuration:
    """Tests for the hold-duration quartile report."""

    def hold_session(self, count):
        trials = tuple(
            Trial(subject_bit=1 if d > count // 2 else 0, control_bit=None,
                  block_index=0, trial_index=d - 1, hold_duration_ms=float(d))
            for d in range(1, count + 1)
        )
        return Session(session_id='h', blocks=(
            Block(index=0, n=count, subject_hits=sum(t.subject_bit for t in trials),
                  trials=trials),))

    def test_quartiles(self):
        """Test longer holds map to the upper quartile and more hits."""
        report = hold_duration_report([self.hold_session(40)])
        assert report['trials'] == 40
        assert report['cut_points']['q1'] == pytest.approx(10.75)
        assert report['cut_points']['q3'] == pytest.approx(30.25)
        rows = report['quartiles']
        assert rows[0]['trials'] == 10 and rows[0]['hit_rate'] == 0.0
        assert rows[3]['trials'] == 10 and rows[3]['hit_rate'] == 1.0
        assert report['q4_vs_q1'].statistic > 4
        assert report['correlation'] > 0.8

    def test_too_few_trials(self):
        assert hold_duration_report([self.hold_session(19)]) is None
