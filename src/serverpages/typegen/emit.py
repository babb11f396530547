from __future__ import annotations

from typing import Iterable

from serverpages.codegen.banner import ts_banner
from serverpages.typegen.infer import PageTypes, ts_key

SHARED_DATA = "SharedData"


def render_interface(types: PageTypes) -> str:
    lines = [f"export interface {types.interface_name} extends {SHARED_DATA} {{"]

    if types.actions:
        lines.append("  actions: {")
        for name, entity_bound in types.actions.items():
            # entity-bound actions need a concrete id, so the index response omits them
            lines.append(f"    {ts_key(name)}{'?' if entity_bound else ''}: string;")
        lines.append("  };")

    for f in types.fields:
        marker = "?" if f.optional else ""
        comment = f" // {f.comment}" if f.comment else ""
        lines.append(f"  {ts_key(f.key)}{marker}: {f.expression};{comment}")

    lines.append("  [key: string]: unknown; // Allow additional props")
    lines.append("}")
    return "\n".join(lines) + "\n"


def merge_imports(pages: Iterable[PageTypes], shared_data_import: str = "./index") -> dict[str, str]:
    """Every page's import accumulator plus SharedData, sorted by name."""
    imports = {SHARED_DATA: shared_data_import}
    for p in pages:
        imports.update(p.imports)
    return dict(sorted(imports.items()))


def render_page_types_module(pages: Iterable[PageTypes], shared_data_import: str = "./index") -> str | None:
    """The page-props module, or None when no page produced an interface."""
    emitted = [p for p in pages if p.emitted]
    if not emitted:
        return None

    imports = merge_imports(emitted, shared_data_import)
    out = [ts_banner()]
    out.append("".join(f"import type {{ {name} }} from '{path}';\n" for name, path in imports.items()))
    out.append("\n".join(render_interface(p) for p in emitted))
    return "\n".join(out)
