"""Expansion of ${...} references in step configuration strings.

Supported references:

- ``${env.NAME}``: run environment variable
- ``${vars.NAME}``: variable passed on the command line
- ``${outputs.STEP.KEY}``: value published by an earlier step

``$${`` produces a literal ``${``.
"""

import re
from typing import Any

from conveyor.errors import TemplateError
from conveyor.pipeline.context import ExecutionContext

_REFERENCE = re.compile(r"\$\$\{|\$\{([^}]*)\}")


def expand(value: str, context: ExecutionContext) -> str:
    """Replace every reference in ``value``.

    Raises:
        TemplateError: If a reference is malformed or undefined
    """

    def substitute(match: re.Match) -> str:
        if match.group(0) == "$${":
            return "${"
        return str(_lookup(match.group(1).strip(), context))

    return _REFERENCE.sub(substitute, value)


def expand_config(values: dict[str, Any], context: ExecutionContext) -> dict[str, Any]:
    """Expand references in string values and string list items."""
    expanded: dict[str, Any] = {}
    for key, value in values.items():
        if isinstance(value, str):
            expanded[key] = expand(value, context)
        elif isinstance(value, list):
            expanded[key] = [expand(v, context) if isinstance(v, str) else v for v in value]
        else:
            expanded[key] = value
    return expanded


def _lookup(reference: str, context: ExecutionContext) -> Any:
    scope, _, rest = reference.partition(".")
    if not rest:
        raise TemplateError(f"malformed reference '${{{reference}}}'")

    if scope == "env":
        if rest not in context.env:
            raise TemplateError(f"undefined environment variable '{rest}'")
        return context.env[rest]

    if scope == "vars":
        if rest not in context.variables:
            raise TemplateError(f"undefined variable '{rest}'")
        return context.variables[rest]

    if scope == "outputs":
        step_name, _, key = rest.partition(".")
        if not key:
            raise TemplateError(f"output reference needs a key: '${{{reference}}}'")
        outputs = context.get_output(step_name)
        if outputs is None:
            raise TemplateError(f"step '{step_name}' has published no outputs")
        if key not in outputs:
            raise TemplateError(f"step '{step_name}' has no output '{key}'")
        return outputs[key]

    raise TemplateError(f"unknown reference scope '{scope}' in '${{{reference}}}'")
