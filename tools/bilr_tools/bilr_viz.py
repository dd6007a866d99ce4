"""
Visualization functions for BilR cohort summaries.
"""

import numpy as np
import matplotlib.pyplot as plt
import seaborn as sns


PRESENT_COLOR = '#2a9d8f'
ABSENT_COLOR = '#d9d9d9'


def _rotate_labels(ax, labels):
    if any(len(str(label)) > 6 for label in labels) or len(labels) > 8:
        plt.setp(ax.get_xticklabels(), rotation=45, ha='right')


def plot_presence_fraction(summary_df, title=None, xlabel='Cohort'):
    """
    Create a stacked bar chart of present/absent fractions per cohort.

    Parameters:
    -----------
    summary_df : pandas.DataFrame
        Cohort summary table from summaries_to_frame, in display order
    title : str, optional
        Plot title
    xlabel : str
        X-axis label

    Returns:
    --------
    matplotlib.figure.Figure
        Bar chart figure
    """
    labels = [str(label) for label in summary_df['label']]
    present = summary_df['presence_fraction'].fillna(0).to_numpy()
    absent = np.where(summary_df['fraction_defined'], 1 - present, 0)
    x = np.arange(len(labels))

    fig, ax = plt.subplots(figsize=(max(6, len(labels) * 0.6), 5))

    ax.bar(x, present, color=PRESENT_COLOR, label='present')
    ax.bar(x, absent, bottom=present, color=ABSENT_COLOR, label='absent')

    # Sample size above each bar; empty cohorts are drawn with zero height
    for xi, n in zip(x, summary_df['n']):
        ax.text(xi, 1.02, f"n={n}", ha='center', va='bottom', fontsize=8)

    ax.set_xticks(x)
    ax.set_xticklabels(labels)
    ax.set_ylim(0, 1.1)
    ax.set_xlabel(xlabel)
    ax.set_ylabel('Fraction of samples')
    ax.set_title(title or 'BilR presence by cohort')
    ax.legend(bbox_to_anchor=(1.02, 1), loc='upper left')
    _rotate_labels(ax, labels)

    plt.tight_layout()

    return fig


def plot_mean_cpm(summary_df, title=None, xlabel='Cohort', log_scale=False):
    """Create a bar chart of mean BilR CPM per cohort."""
    plot_data = summary_df.dropna(subset=['mean_cpm'])

    fig, ax = plt.subplots(figsize=(max(6, len(summary_df) * 0.6), 5))

    if not plot_data.empty:
        plot_labels = set(plot_data['label'])
        sns.barplot(
            x='label',
            y='mean_cpm',
            data=plot_data,
            order=[label for label in summary_df['label'] if label in plot_labels],
            color=PRESENT_COLOR,
            ax=ax,
        )

    if log_scale and not plot_data.empty:
        ax.set_yscale('log')

    ax.set_xlabel(xlabel)
    ax.set_ylabel('Mean CPM')
    ax.set_title(title or 'Mean BilR abundance by cohort')
    _rotate_labels(ax, list(plot_data['label']))

    plt.tight_layout()

    return fig
