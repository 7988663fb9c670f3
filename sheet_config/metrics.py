"""
Prometheus text exposition of a config snapshot.
Only numeric and boolean values are exported; strings and nulls are skipped.
"""
from sheet_config.coerce import ValueKind

METRIC_NAME = "remote_config"
CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"


def _escape_label(value: str) -> str:
    return value.replace("\\", "\\\\").replace("\n", "\\n").replace('"', '\\"')


def render_metrics(values) -> str:
    """One `remote_config{key="..."} <value>` line per exportable key, in snapshot order."""
    lines = []
    for key, value in values.items():
        if value.kind is ValueKind.BOOL:
            sample = "1" if value.value else "0"
        elif value.kind in (ValueKind.INT, ValueKind.FLOAT):
            sample = repr(value.value)
        else:
            continue
        lines.append(f'{METRIC_NAME}{{key="{_escape_label(key)}"}} {sample}')
    return "".join(line + "\n" for line in lines)
