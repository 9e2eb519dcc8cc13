"""Static figures of an analysis report."""

from .plots import (
    plot_group_means,
    plot_block_autocorrelation,
    plot_trial_spectra,
    plot_subject_vs_control,
    save_report_plots,
)

__all__ = [
    'plot_group_means',
    'plot_block_autocorrelation',
    'plot_trial_spectra',
    'plot_subject_vs_control',
    'save_report_plots',
]
