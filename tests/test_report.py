"""
Tests for report assembly and the command-line entry point.

Run with: python -m pytest tests/test_report.py -v
"""

import json
import math
import pytest
import numpy as np
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from intention_stats.__main__ import filter_overrides, main, parse_args
from intention_stats.core.config import AnalysisConfig, FilterSpec
from intention_stats.core.records import normalize_sessions
from intention_stats.analysis.report import SCHEMA_VERSION, build_report, to_jsonable


FAST_CONFIG = "analysis:\n  n_permutations: 200\n  n_bootstrap: 100\n"


def make_snapshot(seed=11, per_group=4, n_blocks=12, n=64):
    """Session documents in the stored export shape, with raw bits."""
    rng = np.random.default_rng(seed)
    docs = []
    for group in ('human', 'ai', 'baseline'):
        for i in range(per_group):
            minutes = []
            for b in range(n_blocks):
                subject = [int(x) for x in rng.integers(0, 2, size=n)]
                control = [int(x) for x in rng.integers(0, 2, size=n)]
                minutes.append({
                    'idx': b, 'n': n, 'hits': sum(subject), 'ghost_hits': sum(control),
                    'trial_data': {'subject_bits': subject, 'demon_bits': control},
                })
            docs.append({
                'id': f'{group}-{i}',
                'participant_id': f'p-{group}-{i}',
                'mode': group,
                'exitedEarly': False,
                'createdAt': 1700000000000 + i * 1000,
                'minutes': minutes,
            })
    return docs


@pytest.fixture
def snapshot_file(tmp_path):
    path = tmp_path / 'snapshot.json'
    path.write_text(json.dumps({'sessions': make_snapshot()}))
    return path


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / 'config.yaml'
    path.write_text(FAST_CONFIG)
    return path


class TestToJsonable:
    """Tests for plain-value conversion."""

    def test_non_finite_floats(self):
        assert to_jsonable(float('nan')) is None
        assert to_jsonable(float('inf')) is None
        assert to_jsonable([1.5, -math.inf]) == [1.5, None]

    def test_containers_and_numpy(self):
        data = to_jsonable({1: (np.float64(0.25), np.int64(3)), 'a': np.array([1, 2])})
        assert data == {'1': [0.25, 3], 'a': [1, 2]}
        assert isinstance(data['1'][0], float)
        assert to_jsonable(np.bool_(True)) is True

    def test_dataclass(self):
        assert to_jsonable(AnalysisConfig())['trial_lags'] == [1, 2, 3, 5, 10]

    def test_unknown_type(self):
        with pytest.raises(TypeError):
            to_jsonable(object())


class TestBuildReport:
    """Tests for the full pipeline on a synthetic snapshot."""

    def setup_method(self):
        self.sessions, self.coverage = normalize_sessions(make_snapshot())
        self.config = AnalysisConfig(n_permutations=200, n_bootstrap=100)

    def test_report_is_strict_json(self):
        data = build_report(self.sessions, self.config, self.coverage).to_dict()
        text = json.dumps(data, allow_nan=False)
        assert json.loads(text)['schema_version'] == SCHEMA_VERSION

    def test_sections(self):
        data = build_report(self.sessions, self.config, self.coverage).to_dict()
        assert set(data) == {'schema_version', 'coverage', 'config', 'aggregate',
                             'confirmatory', 'exploratory', 'controls'}
        assert data['coverage']['sessions_kept'] == 12
        assert data['aggregate']['n_sessions_used'] == 12
        assert data['confirmatory']['correction']['k'] == 3
        assert data['confirmatory']['family'] == 'confirmatory'
        assert data['exploratory']['family'] == 'exploratory'
        assert data['exploratory']['correction_scope'] == 'within_test'
        assert data['exploratory']['block_dynamics']['sessions'] == 12
        assert set(data['controls']) == {'validation', 'randomness'}
        assert data['controls']['randomness']['subject']['bits'] == 12 * 12 * 64

    def test_deterministic(self):
        """Test two runs with the same seed give identical reports."""
        first = build_report(self.sessions, self.config, self.coverage).to_dict()
        second = build_report(self.sessions, self.config, self.coverage).to_dict()
        assert first == second

    def test_filters_apply_to_every_section(self):
        config = AnalysisConfig(n_permutations=200, n_bootstrap=100,
                                filters=FilterSpec(session_type='human'))
        report = build_report(self.sessions, config)
        assert report.aggregate.n_sessions_input == 12
        assert report.aggregate.n_sessions_used == 4
        assert report.controls.control_trials == 4 * 12 * 64
        assert report.to_dict()['coverage'] is None

    def test_empty_input(self):
        data = build_report([], self.config).to_dict()
        json.dumps(data, allow_nan=False)
        assert data['aggregate']['n_sessions_used'] == 0
        assert all(c['test_name'] == 'insufficient_data'
                   for c in data['confirmatory']['comparisons'])


class TestCli:
    """Tests for the analyze command."""

    def test_parse_args(self):
        args = parse_args(['analyze', 'snap.json', '--completion', 'completers',
                           '--session-weighted'])
        assert args.snapshot == 'snap.json'
        assert filter_overrides(args) == {
            'filters': {'completion': 'completers', 'session_weighted': True}}

    def test_no_filter_flags(self):
        assert filter_overrides(parse_args(['analyze', 'snap.json'])) == {}

    def test_bad_completion_choice(self):
        with pytest.raises(SystemExit):
            parse_args(['analyze', 'snap.json', '--completion', 'sometimes'])

    def test_writes_report(self, snapshot_file, config_file, tmp_path):
        out = tmp_path / 'out' / 'report.json'
        code = main(['analyze', str(snapshot_file), '--config', str(config_file),
                     '--out', str(out), '--session-type', 'human'])
        assert code == 0
        data = json.loads(out.read_text())
        assert data['coverage']['sessions_seen'] == 12
        assert data['aggregate']['n_sessions_used'] == 4
        assert data['config']['filters']['session_type'] == 'human'
        assert data['config']['n_permutations'] == 200

    def test_stdout(self, snapshot_file, config_file, capsys):
        code = main(['analyze', str(snapshot_file), '--config', str(config_file)])
        assert code == 0
        data = json.loads(capsys.readouterr().out)
        assert data['schema_version'] == SCHEMA_VERSION

    def test_plots(self, snapshot_file, config_file, tmp_path):
        plots = tmp_path / 'plots'
        code = main(['analyze', str(snapshot_file), '--config', str(config_file),
                     '--out', str(tmp_path / 'report.json'), '--plots', str(plots)])
        assert code == 0
        assert (plots / 'group_means.png').exists()
        assert (plots / 'subject_vs_control.png').exists()

    def test_missing_snapshot(self, tmp_path):
        assert main(['analyze', str(tmp_path / 'missing.json')]) == 1

    def test_invalid_snapshot(self, tmp_path):
        path = tmp_path / 'bad.json'
        path.write_text('{"sessions": ')
        assert main(['analyze', str(path)]) == 1

    def test_undecodable_snapshot(self, tmp_path):
        path = tmp_path / 'latin.json'
        path.write_bytes(b'[{"id": "s\xff"}]')
        assert main(['analyze', str(path)]) == 1

    def test_bad_config(self, snapshot_file, tmp_path):
        config = tmp_path / 'bad.yaml'
        config.write_text("analysis:\n  not_a_setting: 1\n")
        assert main(['analyze', str(snapshot_file), '--config', str(config)]) == 1
