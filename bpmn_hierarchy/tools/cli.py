"""
Process Hierarchy CLI

Command-line inspection tool over JSON-serialized process definitions, the
output of an external BPMN parser. The input file holds either a list of
definitions or an object with a ``processes`` list.
"""

import json
import logging
import sys
from pathlib import Path
from typing import Any, List, Optional, Tuple

import click
from pydantic import TypeAdapter, ValidationError

from bpmn_hierarchy.core.config import HierarchyConfig
from bpmn_hierarchy.core.observability import LogLevel, ObservabilityConfig, ObservabilityManager
from bpmn_hierarchy.models.definitions import ProcessDefinition
from bpmn_hierarchy.models.diagnostics import Diagnostic, Severity
from bpmn_hierarchy.models.overrides import OverrideMap, load_override_map
from bpmn_hierarchy.models.tree import ProcessTreeNode, TreeNodeKind
from bpmn_hierarchy.pipeline import HierarchyPipeline, ProcessHierarchyResult
from bpmn_hierarchy.tools.analysis import collect_diagnostics, file_processing_order

logger = logging.getLogger(__name__)

_DEFINITIONS = TypeAdapter(List[ProcessDefinition])


@click.group()
@click.version_option(package_name="bpmn-hierarchy")
def cli():
    """BPMN Hierarchy CLI - Resolve multi-file process graphs and trees."""
    pass


def _common_options(func):
    """Options shared by every command."""
    options = [
        click.argument("definitions_file", type=click.Path(exists=True, dir_okay=False)),
        click.option(
            "--overrides",
            type=click.Path(exists=True, dir_okay=False),
            default=None,
            help="Manual mapping file (bpmn-map.json layout or flat JSON object)",
        ),
        click.option(
            "--preferred-root",
            multiple=True,
            help="Process id or file name to prefer as root (repeatable)",
        ),
        click.option("--verbose/--quiet", default=False, help="Verbose logging output"),
        click.option("--json-logs", is_flag=True, help="Emit logs as JSON lines"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


@cli.command()
@_common_options
@click.option("--json-output", is_flag=True, help="Print the full graph as JSON")
@click.option("--strict", is_flag=True, help="Exit with status 1 when errors were diagnosed")
def graph(
    definitions_file: str,
    overrides: Optional[str],
    preferred_root: Tuple[str, ...],
    verbose: bool,
    json_logs: bool,
    json_output: bool,
    strict: bool,
) -> None:
    """
    Build the cross-file process graph and report links, roots and cycles.

    \b
    Examples:
        bpmn-hierarchy graph parsed.json
        bpmn-hierarchy graph parsed.json --overrides bpmn-map.json --json-output
    """
    result = _run(definitions_file, overrides, preferred_root, None, True, verbose, json_logs)
    process_graph = result.graph

    if json_output:
        click.echo(process_graph.model_dump_json(indent=2))
    else:
        click.echo(f"Processes: {len(process_graph.processes)}")
        click.echo(f"Roots: {', '.join(process_graph.roots) or '-'}")
        matched = sum(1 for link in process_graph.links.values() if link.is_matched)
        click.echo(f"Invocations: {len(process_graph.links)} ({matched} matched)")
        for node_id, link in process_graph.links.items():
            target = link.matched_process_id or "-"
            click.echo(
                f"  {node_id} -> {target} "
                f"[{link.match_status.value}, {link.match_source.value}, {link.confidence:.2f}]"
            )
        for cycle in process_graph.cycles:
            click.echo(f"Cycle: {' -> '.join(cycle.process_ids)}")
        for missing in process_graph.missing_dependencies:
            click.echo(
                f"Missing: {missing.file_name}:{missing.invocation_id} -> "
                f"{missing.attempted_target or '?'} ({missing.match_status.value})"
            )
        _echo_diagnostics(collect_diagnostics(process_graph, result.tree))

    _exit_if_strict(strict, result)


@cli.command()
@_common_options
@click.option("--root", default=None, help="Root process (internal id, declared id or file)")
@click.option("--tasks/--no-tasks", default=True, help="Include task nodes")
@click.option("--json-output", is_flag=True, help="Print the tree as flat JSON rows")
@click.option("--strict", is_flag=True, help="Exit with status 1 when errors were diagnosed")
def tree(
    definitions_file: str,
    overrides: Optional[str],
    preferred_root: Tuple[str, ...],
    verbose: bool,
    json_logs: bool,
    root: Optional[str],
    tasks: bool,
    json_output: bool,
    strict: bool,
) -> None:
    """
    Expand the process tree from a root and print it.

    \b
    Examples:
        bpmn-hierarchy tree parsed.json
        bpmn-hierarchy tree parsed.json --root mortgage.bpmn --no-tasks
    """
    result = _run(definitions_file, overrides, preferred_root, root, tasks, verbose, json_logs)
    if result.tree is None:
        click.echo("No processes found", err=True)
        sys.exit(1)

    if json_output:
        click.echo(json.dumps(result.tree.to_records(), indent=2))
    else:
        for line in render_tree(result.tree):
            click.echo(line)

    _exit_if_strict(strict, result)


@cli.command()
@_common_options
def order(
    definitions_file: str,
    overrides: Optional[str],
    preferred_root: Tuple[str, ...],
    verbose: bool,
    json_logs: bool,
) -> None:
    """
    Print files in processing order, invoked files first.

    \b
    Examples:
        bpmn-hierarchy order parsed.json
    """
    result = _run(definitions_file, overrides, preferred_root, None, True, verbose, json_logs)
    for file_name in file_processing_order(result.graph):
        click.echo(file_name)


# ==================
# Helper Functions
# ==================


def load_definitions(path: str) -> List[ProcessDefinition]:
    """
    Read process definitions from a JSON file.

    Raises:
        ValueError: If the file is not valid JSON or not a definitions list
    """
    try:
        data: Any = json.loads(Path(path).read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ValueError(f"{path} is not valid JSON: {e}") from e

    if isinstance(data, dict) and "processes" in data:
        data = data["processes"]
    if not isinstance(data, list):
        raise ValueError(f"{path} must contain a list of process definitions")

    try:
        return _DEFINITIONS.validate_python(data)
    except ValidationError as e:
        raise ValueError(f"{path} holds invalid process definitions: {e}") from e


def render_tree(root: ProcessTreeNode) -> List[str]:
    """Indented text lines, one per node, with diagnostic badges."""
    lines = []
    for node in root.iter_nodes():
        indent = "  " * (node.depth - root.depth)
        label = f"{indent}{node.display_name} [{node.kind.value}]"
        if node.kind == TreeNodeKind.PROCESS and node.file_name:
            label += f" ({node.file_name})"
        if node.kind == TreeNodeKind.TASK and node.task_type:
            label += f" <{node.task_type}>"
        if node.link is not None:
            label += f" -> {node.link.matched_process_id or '?'} ({node.link.match_status.value})"
        if node.order_index is not None:
            label += f" #{node.order_index}"
        lines.append(label)
        for diagnostic in node.diagnostics:
            lines.append(f"{indent}  ! {_code(diagnostic)}: {diagnostic.message}")
    return lines


def _setup_observability(verbose: bool, json_logs: bool) -> None:
    obs_config = ObservabilityConfig(
        service_name="bpmn-hierarchy-cli",
        log_level=LogLevel.DEBUG if verbose else LogLevel.WARNING,
        json_logs=json_logs,
        enable_metrics=False,
    )
    ObservabilityManager.reset()
    ObservabilityManager.initialize(obs_config)


def _run(
    definitions_file: str,
    overrides_file: Optional[str],
    preferred_root: Tuple[str, ...],
    root: Optional[str],
    include_tasks: bool,
    verbose: bool,
    json_logs: bool,
) -> ProcessHierarchyResult:
    _setup_observability(verbose, json_logs)

    try:
        definitions = load_definitions(definitions_file)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="DEFINITIONS_FILE") from e

    override_map: Optional[OverrideMap] = None
    if overrides_file:
        try:
            override_map = load_override_map(overrides_file)
        except (ValueError, TypeError) as e:
            raise click.BadParameter(str(e), param_hint="--overrides") from e

    config = HierarchyConfig.from_env()
    config.include_tasks = include_tasks
    pipeline = HierarchyPipeline(config)

    try:
        return pipeline.run(
            definitions,
            root_process_id=root,
            preferred_root_hint=list(preferred_root),
            overrides=override_map,
        )
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--root") from e


def _code(diagnostic: Diagnostic) -> str:
    return str(getattr(diagnostic.code, "value", diagnostic.code))


def _echo_diagnostics(diagnostics: List[Diagnostic]) -> None:
    for diagnostic in diagnostics:
        click.echo(f"{diagnostic.severity.value.upper()} {_code(diagnostic)}: {diagnostic.message}")


def _exit_if_strict(strict: bool, result: ProcessHierarchyResult) -> None:
    if strict and any(d.severity == Severity.ERROR for d in result.diagnostics):
        click.echo("Errors were diagnosed", err=True)
        sys.exit(1)


if __name__ == "__main__":
    cli()
