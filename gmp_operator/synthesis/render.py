"""YAML rendering of generated configuration documents."""
from typing import Any

import yaml


class IndentDumper(yaml.SafeDumper):
    """SafeDumper that indents block sequences under their parent key."""

    def increase_indent(self, flow=False, indentless=False):
        return super().increase_indent(flow, False)


def render_yaml(document: Any) -> str:
    """
    Render a document to YAML text.

    Keys keep their insertion order. Callers build documents in a fixed key
    order, which makes the output byte-stable for equal inputs.
    """
    return yaml.dump(
        document,
        Dumper=IndentDumper,
        default_flow_style=False,
        sort_keys=False,
        allow_unicode=True,
        width=float("inf"),
    )
