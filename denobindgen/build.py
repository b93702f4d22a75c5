"""
End-to-end pipeline: parse, expand, analyze, render and write.
"""

import logging
from typing import Dict, List, Optional

from .config import ExportConfiguration
from .emitter import Emitter, render_file
from .expander import Expander
from .frontend import Cursor
from .libclang import parse_tu
from .registry import SymbolTable
from .selfref import resolve_self_references
from .usage import collect_usage, finalize_usage
from .walker import gather_entries
from .writer import write_outputs

logger = logging.getLogger(__name__)


def generate(config: ExportConfiguration, root: Cursor) -> Dict[str, str]:
    """Output text keyed by path relative to the output directory."""
    config.validate()
    table = SymbolTable()
    gather_entries(table, root)

    expander = Expander(table)
    for spec in config.imports:
        expander.visit(spec)

    for entry in table.used_struct_likes():
        resolve_self_references(entry)
    collect_usage(table)
    finalize_usage(table)

    emitter = Emitter(str(config.base_path))
    for file, entries in table.used_entries().items():
        emitter.add(render_file(file, entries))
    return emitter.render_outputs()


def parse(config: ExportConfiguration) -> Cursor:
    # Headers are named relative to the base path
    include = [str(config.base_path)] + list(config.include)
    return parse_tu(config.files, include, config.target)


def build(config: ExportConfiguration, root: Optional[Cursor] = None) -> List[str]:
    """Generate bindings for `config` and write them. Returns the written paths."""
    config.validate()
    if root is None:
        root = parse(config)
    outputs = generate(config, root)
    written = write_outputs(outputs, config.output_path, config.format_command)
    logger.info("Generated %d files in %s", len(written), config.output_path)
    return [str(path) for path in written]
