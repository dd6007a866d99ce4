"""
Analysis parameters for the BilR cohort pipeline.

Defaults live in ``AnalysisConfig``; ``load_config`` overlays the values from
a YAML parameters file (see ``config/analysis_parameters.yml``).
"""

from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Optional, Tuple

import yaml

from .bilr_types import BilrError


# Methods accepted by statsmodels.stats.multitest.multipletests
P_ADJUST_METHODS = (
    'bonferroni', 'sidak', 'holm-sidak', 'holm', 'simes-hochberg',
    'hommel', 'fdr_bh', 'fdr_by', 'fdr_tsbh', 'fdr_tsbky',
)


class ConfigError(BilrError, ValueError):
    """Invalid analysis parameters."""


def _range_labels(start, stop, width):
    return tuple(f"{lo}-{lo + width - 1}" for lo in range(start, stop, width))


@dataclass(frozen=True)
class AgeBinView:
    """
    Right-closed age bins (days) for the infant cohort.

    ``edges`` has one more entry than ``labels``. Ages outside
    ``[min_age, max_age]`` are not binned.
    """

    name: str
    min_age: float
    max_age: float
    edges: Tuple[float, ...]
    labels: Tuple[str, ...]

    def validate(self):
        if len(self.edges) != len(self.labels) + 1:
            raise ConfigError(
                f"Age view '{self.name}': {len(self.edges)} edges for {len(self.labels)} labels"
            )
        if any(b <= a for a, b in zip(self.edges, self.edges[1:])):
            raise ConfigError(f"Age view '{self.name}': edges must be strictly increasing")
        if len(set(self.labels)) != len(self.labels):
            raise ConfigError(f"Age view '{self.name}': duplicate labels")
        if self.min_age <= self.edges[0] or self.max_age > self.edges[-1]:
            raise ConfigError(
                f"Age view '{self.name}': range [{self.min_age}, {self.max_age}] "
                f"is not covered by edges {self.edges[0]}..{self.edges[-1]}"
            )


YEAR_VIEW = AgeBinView(
    name='year',
    min_age=0,
    max_age=365,
    edges=tuple(range(-1, 360, 30)) + (365,),
    labels=_range_labels(0, 360, 30) + ('360+',),
)

THREE_MONTH_VIEW = AgeBinView(
    name='three_month',
    min_age=0,
    max_age=89,
    edges=tuple(range(-1, 90, 5)),
    labels=_range_labels(0, 90, 5),
)


@dataclass(frozen=True)
class DiseaseComparison:
    """Disease groups to compare, in display order."""

    name: str
    labels: Tuple[str, ...]
    pairwise: bool = True


@dataclass(frozen=True)
class CompositeComparison:
    """Young infants against adults of one disease category."""

    name: str = 'newborn_vs_adult'
    max_infant_age_days: float = 29
    infant_label: str = 'Infants < 1 month'
    adult_disease: str = 'healthy'
    adult_label: str = 'Healthy adults'


@dataclass(frozen=True)
class AnalysisConfig:
    cpm_threshold: float = 5.0
    min_total_reads: int = 1_000_000
    age_views: Tuple[AgeBinView, ...] = (YEAR_VIEW, THREE_MONTH_VIEW)
    disease_comparisons: Tuple[DiseaseComparison, ...] = (
        DiseaseComparison('ibd', ('CD', 'UC', 'healthy')),
        DiseaseComparison('infant_vs_adult', ('infant', 'healthy')),
    )
    composite_comparisons: Tuple[CompositeComparison, ...] = (CompositeComparison(),)
    excluded_bioprojects: Tuple[str, ...] = ()
    continuity_correction: bool = True
    p_adjust: Optional[str] = None
    max_workers: Optional[int] = None
    figure_dpi: int = 300

    def age_view(self, name: str) -> AgeBinView:
        for view in self.age_views:
            if view.name == name:
                return view
        raise ConfigError(f"Unknown age view: {name}")

    def validate(self):
        if self.cpm_threshold < 0:
            raise ConfigError("cpm_threshold must be non-negative")
        if self.min_total_reads < 0:
            raise ConfigError("min_total_reads must be non-negative")
        if self.p_adjust is not None and self.p_adjust not in P_ADJUST_METHODS:
            raise ConfigError(
                f"Unknown p_adjust method '{self.p_adjust}'. "
                f"Use one of: {', '.join(P_ADJUST_METHODS)}"
            )
        for view in self.age_views:
            view.validate()
        for comparison in self.disease_comparisons:
            if len(set(comparison.labels)) != len(comparison.labels):
                raise ConfigError(f"Comparison '{comparison.name}': duplicate labels")
        return self


_TOP_LEVEL_KEYS = {'thresholds', 'age_bins', 'disease_comparisons',
                   'composite_comparisons', 'curation', 'statistics',
                   'visualization'}
_SECTION_KEYS = {
    'thresholds': {'cpm_threshold', 'min_total_reads'},
    'curation': {'excluded_bioprojects'},
    'statistics': {'continuity_correction', 'p_adjust', 'max_workers'},
    'visualization': {'figure_dpi'},
}
_AGE_VIEW_KEYS = {'min_age', 'max_age', 'edges', 'labels'}
_DISEASE_COMPARISON_KEYS = {'name', 'labels', 'pairwise'}
_COMPOSITE_COMPARISON_KEYS = {f.name for f in fields(CompositeComparison)}


def _check_keys(where, section, allowed):
    if not isinstance(section, dict):
        raise ConfigError(f"{where} must be a mapping, got {type(section).__name__}")
    unknown = set(section) - allowed
    if unknown:
        raise ConfigError(f"Unknown keys in {where}: {', '.join(sorted(unknown))}")


def _age_view_from_dict(name, section):
    _check_keys(f"age_bins.{name}", section, _AGE_VIEW_KEYS)
    try:
        return AgeBinView(
            name=name,
            min_age=section['min_age'],
            max_age=section['max_age'],
            edges=tuple(section['edges']),
            labels=tuple(str(label) for label in section['labels']),
        )
    except KeyError as e:
        raise ConfigError(f"Age view '{name}' is missing '{e.args[0]}'") from e


def config_from_dict(params: dict, base: AnalysisConfig = None) -> AnalysisConfig:
    """Overlay a parsed parameters mapping onto ``base`` (defaults if None)."""
    config = base or AnalysisConfig()
    params = params or {}

    unknown = set(params) - _TOP_LEVEL_KEYS
    if unknown:
        raise ConfigError(f"Unknown configuration sections: {', '.join(sorted(unknown))}")
    for section_name, allowed in _SECTION_KEYS.items():
        _check_keys(section_name, params.get(section_name) or {}, allowed)

    changes = {}

    thresholds = params.get('thresholds') or {}
    if 'cpm_threshold' in thresholds:
        changes['cpm_threshold'] = float(thresholds['cpm_threshold'])
    if 'min_total_reads' in thresholds:
        changes['min_total_reads'] = int(thresholds['min_total_reads'])

    if params.get('age_bins'):
        changes['age_views'] = tuple(
            _age_view_from_dict(name, section) for name, section in params['age_bins'].items()
        )

    if params.get('disease_comparisons'):
        for item in params['disease_comparisons']:
            _check_keys('disease_comparisons entry', item, _DISEASE_COMPARISON_KEYS)
        changes['disease_comparisons'] = tuple(
            DiseaseComparison(
                name=item['name'],
                labels=tuple(item['labels']),
                pairwise=item.get('pairwise', True),
            )
            for item in params['disease_comparisons']
        )

    if 'composite_comparisons' in params:
        for item in params['composite_comparisons'] or []:
            _check_keys('composite_comparisons entry', item, _COMPOSITE_COMPARISON_KEYS)
        changes['composite_comparisons'] = tuple(
            CompositeComparison(**item) for item in params['composite_comparisons'] or []
        )

    curation = params.get('curation') or {}
    if 'excluded_bioprojects' in curation:
        changes['excluded_bioprojects'] = tuple(curation['excluded_bioprojects'] or [])

    statistics = params.get('statistics') or {}
    for key in ('continuity_correction', 'p_adjust', 'max_workers'):
        if key in statistics:
            changes[key] = statistics[key]

    visualization = params.get('visualization') or {}
    if 'figure_dpi' in visualization:
        changes['figure_dpi'] = int(visualization['figure_dpi'])

    return replace(config, **changes).validate()


def load_config(config_path) -> AnalysisConfig:
    """
    Load analysis parameters from a YAML file.

    Parameters:
    -----------
    config_path : str or Path
        Path to the YAML parameters file

    Returns:
    --------
    AnalysisConfig
        Defaults overlaid with the values found in the file
    """
    config_path = Path(config_path)
    with open(config_path, 'r') as f:
        params = yaml.safe_load(f)
    try:
        return config_from_dict(params)
    except TypeError as e:
        raise ConfigError(f"Invalid configuration in {config_path}: {e}") from e
