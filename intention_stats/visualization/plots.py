"""
Statistical figures of an analysis report.

Creates static PNG charts with:
- Group means and 95% confidence intervals against chance
- Block-level autocorrelation by lag
- Trial-level power spectra
- Per-session subject vs control hit rates
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np

# Matplotlib imports with non-GUI backend
import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt

from ..analysis.aggregator import AggregateResult
from ..analysis.primary import PrimaryAnalysis

logger = logging.getLogger(__name__)

# Color schemes
GROUP_COLORS = {
    'human': '#3498db',      # Blue
    'ai_agent': '#e74c3c',   # Red
    'baseline': '#95a5a6',   # Gray
}

GROUP_LABELS = {
    'human': 'Human',
    'ai_agent': 'AI agent',
    'baseline': 'Baseline',
}

SUBJECT_COLOR = '#2ecc71'
CONTROL_COLOR = '#9b59b6'


def _save(fig: plt.Figure, output_path: str) -> str:
    fig.tight_layout()
    fig.savefig(output_path, dpi=150, bbox_inches='tight', facecolor='white')
    plt.close(fig)
    logger.info("Saved: %s", output_path)
    return output_path


def plot_group_means(
    primary: PrimaryAnalysis,
    output_path: str,
    title: str = "Session Hit Rate by Group (with 95% CI)"
) -> Optional[str]:
    """
    Bar chart of group mean hit rates with confidence-interval error bars.

    Groups without sessions are drawn empty. Returns None when no group
    has a mean.
    """
    groups = [g for g in primary.groups if g.mean is not None]
    if not groups:
        return None

    fig, ax = plt.subplots(figsize=(8, 5))
    x_pos = np.arange(len(groups))
    means = [g.mean for g in groups]
    lower = [g.mean - g.ci_lower if g.ci_lower is not None else 0.0 for g in groups]
    upper = [g.ci_upper - g.mean if g.ci_upper is not None else 0.0 for g in groups]
    colors = [GROUP_COLORS.get(g.group, '#888888') for g in groups]

    ax.bar(x_pos, means, yerr=[lower, upper], color=colors,
           capsize=6, error_kw={'linewidth': 2})
    ax.axhline(y=0.5, color='gray', linestyle='--', alpha=0.6, label='Chance')

    ax.set_xticks(x_pos)
    ax.set_xticklabels([f"{GROUP_LABELS.get(g.group, g.group)}\n(n={g.n})" for g in groups],
                       fontsize=11)
    ax.set_ylabel('Mean session hit rate', fontsize=12, fontweight='bold')
    ax.set_title(title, fontsize=14, fontweight='bold')
    spread = max([abs(m - 0.5) for m in means] + [0.05])
    ax.set_ylim(0.5 - 2 * spread, 0.5 + 2 * spread)
    ax.legend(loc='upper right', fontsize=10)
    ax.grid(True, alpha=0.3, axis='y')

    # Significant comparisons after correction
    significant = [c for c in primary.comparisons if c.significant]
    if significant:
        note = ', '.join(f"{c.group_a} vs {c.group_b} (p_adj={c.p_value_adjusted:.3g})"
                         for c in significant)
        ax.text(0.01, 0.02, note, transform=ax.transAxes, fontsize=9)

    return _save(fig, output_path)


def plot_block_autocorrelation(
    block_dynamics: Dict[str, Any],
    output_path: str,
    title: str = "Block Hit-Rate Autocorrelation by Lag"
) -> Optional[str]:
    """Mean per-session autocorrelation of subject and control block rates."""
    if not block_dynamics.get('sessions'):
        return None

    fig, ax = plt.subplots(figsize=(9, 5))
    offsets = {'subject': -0.15, 'control': 0.15}
    colors = {'subject': SUBJECT_COLOR, 'control': CONTROL_COLOR}
    plotted = False

    for stream in ('subject', 'control'):
        rows = [r for r in block_dynamics['autocorrelation'][stream] if r['mean'] is not None]
        if not rows:
            continue
        lags = np.array([r['lag'] for r in rows], dtype=float)
        means = [r['mean'] for r in rows]
        errors = [r['sd'] / np.sqrt(r['count']) if r['sd'] is not None else 0.0 for r in rows]
        ax.errorbar(lags + offsets[stream], means, yerr=errors, fmt='o', color=colors[stream],
                    capsize=4, markersize=8, linewidth=2, label=stream.capitalize())
        plotted = True

    if not plotted:
        plt.close(fig)
        return None

    ax.axhline(y=0.0, color='gray', linestyle='--', alpha=0.6)
    ax.set_xlabel('Lag (blocks)', fontsize=12, fontweight='bold')
    ax.set_ylabel('Mean autocorrelation (+/- SE)', fontsize=12, fontweight='bold')
    ax.set_title(f"{title} ({block_dynamics['sessions']} sessions)",
                 fontsize=14, fontweight='bold')
    ax.legend(loc='upper right', fontsize=10)
    ax.grid(True, alpha=0.3)

    return _save(fig, output_path)


def plot_trial_spectra(
    trial_dynamics: Dict[str, Any],
    output_path: str,
    max_sessions: int = 20,
    title: str = "Trial-Level Power Spectra"
) -> Optional[str]:
    """
    Overlay the power spectra of up to `max_sessions` sessions.

    Returns None when no session had a spectrum.
    """
    spectra = trial_dynamics.get('spectral', {}).get('sessions', [])
    if not spectra:
        return None

    fig, ax = plt.subplots(figsize=(10, 5))
    for row in spectra[:max_sessions]:
        spectrum = row['spectrum']
        ax.plot(spectrum.frequencies, spectrum.powers, linewidth=1, alpha=0.5)

    mean_peak = trial_dynamics['spectral'].get('mean_peak_frequency')
    if mean_peak is not None:
        ax.axvline(x=mean_peak, color='black', linestyle='--', alpha=0.6,
                   label=f'Mean peak ({mean_peak:.3f})')
        ax.legend(loc='upper right', fontsize=10)

    ax.set_xlabel('Frequency (cycles per trial)', fontsize=12, fontweight='bold')
    ax.set_ylabel('Power', fontsize=12, fontweight='bold')
    ax.set_title(title, fontsize=14, fontweight='bold')
    ax.set_xlim(0, 0.5)
    ax.grid(True, alpha=0.3)

    return _save(fig, output_path)


def plot_subject_vs_control(
    aggregate: AggregateResult,
    output_path: str,
    title: str = "Subject vs Control Hit Rate per Session"
) -> Optional[str]:
    """Scatter of each session's subject rate against its control rate."""
    rows = [s for s in aggregate.sessions
            if s.hit_rate is not None and s.control_rate is not None]
    if not rows:
        return None

    fig, ax = plt.subplots(figsize=(7, 7))
    for group in sorted({s.session_type or 'unknown' for s in rows}):
        members = [s for s in rows if (s.session_type or 'unknown') == group]
        ax.scatter([s.control_rate for s in members], [s.hit_rate for s in members],
                   color=GROUP_COLORS.get(group, '#888888'), alpha=0.7, s=40,
                   label=GROUP_LABELS.get(group, group))

    low = min(min(s.hit_rate for s in rows), min(s.control_rate for s in rows), 0.4)
    high = max(max(s.hit_rate for s in rows), max(s.control_rate for s in rows), 0.6)
    ax.plot([low, high], [low, high], color='gray', linestyle=':', alpha=0.6)
    ax.axhline(y=0.5, color='gray', linestyle='--', alpha=0.4)
    ax.axvline(x=0.5, color='gray', linestyle='--', alpha=0.4)

    ax.set_xlabel('Control hit rate', fontsize=12, fontweight='bold')
    ax.set_ylabel('Subject hit rate', fontsize=12, fontweight='bold')
    ax.set_title(title, fontsize=14, fontweight='bold')
    ax.set_xlim(low, high)
    ax.set_ylim(low, high)
    ax.legend(loc='upper left', fontsize=10)
    ax.grid(True, alpha=0.3)

    return _save(fig, output_path)


def save_report_plots(report, output_dir: str) -> List[str]:
    """
    Render every figure the report has data for.

    Args:
        report: AnalysisReport from `build_report`
        output_dir: Directory for the PNG files (created if missing)

    Returns:
        Paths of the files written
    """
    out = Path(output_dir)
    out.mkdir(parents=True, exist_ok=True)

    written = [
        plot_group_means(report.confirmatory, str(out / 'group_means.png')),
        plot_block_autocorrelation(report.exploratory['block_dynamics'],
                                   str(out / 'block_autocorrelation.png')),
        plot_trial_spectra(report.exploratory['trial_dynamics'],
                           str(out / 'trial_spectra.png')),
        plot_subject_vs_control(report.aggregate, str(out / 'subject_vs_control.png')),
    ]
    return [path for path in written if path is not None]
