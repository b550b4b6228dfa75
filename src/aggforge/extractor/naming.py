"""Series naming and alias templates.

default names follow what the dashboard shows in its legend:
  - no grouping: the metric label ("Count", "Average @value", "p75")
  - grouping: the group keys, outermost first ("server1")
  - grouping + several metric components: keys then label ("server1 Count")

an alias template overrides all of that. placeholders we can't resolve are
left in the output untouched - people use the literal braces to spot typos.
"""

import re
from dataclasses import dataclass

from aggforge.extractor.values import MetricComponent
from aggforge.models.target import MetricSpec, MetricType, QueryTarget

METRIC_LABELS = {
    "count": "Count",
    "avg": "Average",
    "sum": "Sum",
    "max": "Max",
    "min": "Min",
    "extended_stats": "Extended Stats",
    "percentiles": "Percentiles",
    "cardinality": "Unique Count",
    "moving_avg": "Moving Average",
    "moving_fn": "Moving Function",
    "derivative": "Derivative",
    "cumulative_sum": "Cumulative Sum",
    "serial_diff": "Serial Difference",
    "bucket_script": "Bucket Script",
    "raw_document": "Raw Document",
    "raw_data": "Raw Data",
}

EXTENDED_STATS_LABELS = {
    "avg": "Avg",
    "min": "Min",
    "max": "Max",
    "sum": "Sum",
    "count": "Count",
    "std_deviation": "Std Dev",
    "std_deviation_bounds_upper": "Std Dev Upper",
    "std_deviation_bounds_lower": "Std Dev Lower",
}

ALIAS_PATTERN = re.compile(r"\{\{([\s\S]+?)\}\}")


def metric_label(key: str, extended_stats: bool = False) -> str:
    """Display label for a metric type or component key; unknown keys as-is.

    extended_stats components have their own short labels ("Avg", not "Average").
    """
    if extended_stats and key in EXTENDED_STATS_LABELS:
        return EXTENDED_STATS_LABELS[key]
    if key in METRIC_LABELS:
        return METRIC_LABELS[key]
    if key in EXTENDED_STATS_LABELS:
        return EXTENDED_STATS_LABELS[key]
    return key


def describe_metric(metric: MetricSpec) -> str:
    """e.g. "Sum @value" - label plus field when there is one."""
    label = metric_label(metric.type)
    return f"{label} {metric.field}" if metric.field else label


@dataclass(frozen=True)
class SeriesContext:
    """What a single output series is: a metric component within a group."""

    component: MetricComponent
    group: tuple[tuple[str, str], ...] = ()  # (field, key) pairs, outermost first

    @property
    def tags(self) -> dict[str, str]:
        return dict(self.group)


class SeriesNamer:
    """Computes display names for the series of one target."""

    def __init__(self, target: QueryTarget) -> None:
        self.target = target

    def name(self, context: SeriesContext, metric_count: int) -> str:
        component = context.component
        label = metric_label(component.key, component.metric.type == MetricType.EXTENDED_STATS)

        if self.target.alias:
            return self._apply_alias(self.target.alias, context, label)

        label = self._full_label(component, label)
        if not context.group:
            return label

        name = " ".join(value for _, value in context.group)
        if metric_count == 1:
            return name
        return f"{name} {label}"

    def _full_label(self, component: MetricComponent, label: str) -> str:
        metric = component.metric
        if metric.type == MetricType.BUCKET_SCRIPT:
            return self._script_label(metric, label)
        if metric.is_pipeline:
            source = self.target.get_metric(metric.source_id) if metric.source_id else None
            if source is None:
                return "Unset"
            return f"{label} {describe_metric(source)}"
        if component.field:
            return f"{label} {component.field}"
        return label

    def _script_label(self, metric: MetricSpec, default: str) -> str:
        """Script text with each params.<var> swapped for its source metric."""
        script = metric.settings.get("script")
        if isinstance(script, dict):
            script = script.get("inline") or script.get("source")
        if not isinstance(script, str) or not script:
            return default

        # longest names first so params.var10 isn't clobbered by params.var1
        variables = sorted(metric.pipeline_variables, key=lambda v: len(v.name), reverse=True)
        for variable in variables:
            source = self.target.get_metric(variable.pipeline_agg)
            if source is not None:
                script = script.replace(f"params.{variable.name}", describe_metric(source))
        return script

    def _apply_alias(self, alias: str, context: SeriesContext, label: str) -> str:
        tags = context.tags
        field = context.component.field

        def substitute(match: re.Match[str]) -> str:
            token = match.group(1).strip()
            if token.startswith("term "):
                term_field = token[5:].strip()
                if term_field in tags:
                    return tags[term_field]
            if token in tags:
                return tags[token]
            if token == "metric":
                return label
            if token == "field":
                return field or ""
            return match.group(0)

        return ALIAS_PATTERN.sub(substitute, alias)
