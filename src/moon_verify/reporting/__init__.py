"""Run-scoped finding aggregation and report rendering."""

from moon_verify.reporting.reporter import TAG_OK, Reporter, tag_for

__all__ = ["TAG_OK", "Reporter", "tag_for"]
