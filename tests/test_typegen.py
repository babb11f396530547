import datetime as dt
import textwrap
from decimal import Decimal
from pathlib import Path
from typing import Optional

from fastapi import Request

from serverpages.definition.loader import LoadedDefinition
from serverpages.definition.page import ServerPage
from serverpages.definition.props import Prop
from serverpages.entities import Entity, EntityCollection, ModelBackend
from serverpages.repo.scanner import PageBase
from serverpages.typegen.emit import render_interface, render_page_types_module
from serverpages.typegen.infer import infer_page, infer_ts_type, interface_name, normalize
from serverpages.typegen.models import annotation_to_ts, render_models_module
from serverpages.typegen.naming import singular_candidates, studly

backend = ModelBackend()


class Tag(Entity):
    label: str


class Todo(Entity):
    id: int
    title: str
    done: bool = False
    due: Optional[dt.date] = None
    tags: list[Tag] = []


class Category(Entity):
    name: str


def base(path: str) -> PageBase:
    return PageBase(segments=tuple(path.split("/")))


def loaded(page: ServerPage, **entity_imports) -> LoadedDefinition:
    return LoadedDefinition(path=Path("x.page.py"), page=page.freeze(), entity_imports=entity_imports)


def field_map(types):
    return {f.key: f for f in types.fields}


def test_infer_ts_type_basics():
    assert infer_ts_type(None) == "null"
    assert infer_ts_type(True) == "boolean"
    assert infer_ts_type(3) == "number"
    assert infer_ts_type(2.5) == "number"
    assert infer_ts_type("x") == "string"
    assert infer_ts_type([]) == "unknown[]"
    assert infer_ts_type([1, "a"]) == "number[]"
    assert infer_ts_type({"b": 1, "a": "x", "my-key": None}) == "{ a: string; b: number; 'my-key': null }"
    assert infer_ts_type([{"id": 1}]) == "{ id: number }[]"
    assert infer_ts_type(object()) == "unknown"


def test_normalize_flattens_entities_and_encodes_scalars():
    todo = Todo(id=1, title="a", due=dt.date(2024, 1, 2), tags=[Tag(label="x")])
    value = normalize({"todo": todo, "price": Decimal("1.5")}, backend)

    assert value["todo"] == {"id": 1, "title": "a", "done": False, "due": "2024-01-02", "tags": [{"label": "x"}]}
    assert infer_ts_type(value["price"]) == "number"


def test_naming_helpers():
    assert studly("users/[user]/edit") == "UsersUserEdit"
    assert studly("todo_items") == "TodoItems"
    assert interface_name(base("todos/index")) == "TodosIndexProps"
    assert interface_name(base("404")) == "Page404Props"
    assert singular_candidates("categories")[0] == "category"
    assert "status" in singular_candidates("statuses")
    assert singular_candidates("notes") == ["note", "notes"]


def test_entities_and_collections():
    page = ServerPage.make("T").loader(
        lambda: {
            "todo": Todo(id=1, title="a"),
            "todos": EntityCollection([Todo(id=1, title="a")]),
            "count": 3,
        }
    )
    types = infer_page(base("todos/index"), loaded(page), backend)
    fields = field_map(types)

    assert fields["todo"].expression == "Todo"
    assert fields["todos"].expression == "Todo[]"
    assert fields["count"].expression == "number"
    assert types.imports == {"Todo": "./models"}
    assert types.entities == {"Todo": Todo}


def test_empty_collection_resolved_from_definition_imports():
    page = ServerPage.make("T").loader(lambda: {"todos": EntityCollection()})
    types = infer_page(base("todos/index"), loaded(page, Todo=Todo), backend)

    assert field_map(types)["todos"].expression == "Todo[]"
    assert field_map(types)["todos"].comment is None
    assert types.imports == {"Todo": "./models"}
    assert types.warnings == []


def test_empty_collection_singularises_ies():
    page = ServerPage.make("T").loader(lambda: {"categories": EntityCollection()})
    types = infer_page(base("c"), loaded(page, Category=Category), backend)
    assert field_map(types)["categories"].expression == "Category[]"


def test_unresolved_empty_collection_warns_and_annotates():
    page = ServerPage.make("T").loader(lambda: {"widgets": EntityCollection()})
    types = infer_page(base("w"), loaded(page, Todo=Todo), backend)

    f = field_map(types)["widgets"]
    assert f.expression == "unknown[]"
    assert f.comment.startswith("WARN")
    assert types.emitted
    assert len(types.warnings) == 1


def test_explicit_hint_overrides_inference():
    page = (
        ServerPage.make("T")
        .loader(lambda: {"todos": "not a list", "total": 1, "extra": None})
        .types({"todos": "Todo[]", "total": "string", "owner": f"{__name__}.Category"})
    )
    types = infer_page(base("t"), loaded(page, Todo=Todo), backend)
    fields = field_map(types)

    assert fields["todos"].expression == "Todo[]"
    assert fields["total"].expression == "string"
    assert fields["extra"].expression == "null"
    # hint-only keys follow the loader keys
    assert [f.key for f in types.fields] == ["todos", "total", "extra", "owner"]
    assert fields["owner"].expression == "Category"
    assert types.imports == {"Category": "./models", "Todo": "./models"}


def test_class_and_list_hints():
    page = ServerPage.make("T").loader(lambda: {}).types({"one": Todo, "many": list[Todo], "flag": bool})
    fields = field_map(infer_page(base("t"), loaded(page), backend))
    assert fields["one"].expression == "Todo"
    assert fields["many"].expression == "Todo[]"
    assert fields["flag"].expression == "boolean"


def test_unresolvable_hint_widens_with_warning():
    page = ServerPage.make("T").loader(lambda: {"a": 1, "b": []}).types({"a": "Nope", "b": "Nope[]"})
    types = infer_page(base("t"), loaded(page), backend)

    assert field_map(types)["a"].expression == "unknown"
    assert field_map(types)["b"].expression == "unknown[]"
    assert len(types.warnings) == 2
    assert types.emitted


def test_prop_kinds_mark_optional_and_sample_for_types_only():
    page = ServerPage.make("T").loader(
        lambda: {
            "later": Prop.defer(lambda: 5),
            "maybe": Prop.optional(lambda: ["x"]),
            "tags": Prop.merge(lambda: ["a"]),
            "deep": Prop.deep_merge(lambda: {"k": True}),
            "flash": Prop.always(lambda: None),
        }
    )
    fields = field_map(infer_page(base("t"), loaded(page), backend))

    assert (fields["later"].expression, fields["later"].optional) == ("number", True)
    assert (fields["maybe"].expression, fields["maybe"].optional) == ("string[]", True)
    assert (fields["tags"].expression, fields["tags"].optional) == ("string[]", False)
    assert fields["deep"].expression == "{ k: boolean }"
    assert fields["flash"].expression == "null"


def test_prop_callback_failure_is_unknown():
    def boom():
        raise RuntimeError("db down")

    page = ServerPage.make("T").loader(lambda: {"stats": Prop.defer(boom)})
    types = infer_page(base("t"), loaded(page), backend)

    assert field_map(types)["stats"].expression == "unknown"
    assert field_map(types)["stats"].optional
    assert "db down" in types.warnings[0]


def test_entity_bound_loader_is_never_sampled():
    calls = []

    def load(todo: Todo):
        calls.append(todo)
        return {"todo": todo}

    page = ServerPage.make("T").loader(load)
    types = infer_page(base("todos/[todo]"), loaded(page), backend)

    assert not types.emitted
    assert calls == []
    assert len(types.warnings) == 1

    page = ServerPage.make("T").loader(load).types({"todo": Todo})
    types = infer_page(base("todos/[todo]"), loaded(page), backend)
    assert types.emitted
    assert [(f.key, f.expression) for f in types.fields] == [("todo", "Todo")]
    assert calls == []


def test_failing_or_non_dict_loader_skips_page():
    def boom():
        raise ValueError("nope")

    types = infer_page(base("a"), loaded(ServerPage.make("A").loader(boom)), backend)
    assert not types.emitted
    assert "ValueError" in types.warnings[0]

    types = infer_page(base("b"), loaded(ServerPage.make("B").loader(lambda: [1, 2])), backend)
    assert not types.emitted


def test_async_loader_is_sampled():
    async def load():
        return {"n": 1}

    types = infer_page(base("a"), loaded(ServerPage.make("A").loader(load)), backend)
    assert field_map(types)["n"].expression == "number"


def test_pages_without_loader_or_definition_are_skipped_quietly():
    assert not infer_page(base("a"), None, backend).emitted
    types = infer_page(base("a"), loaded(ServerPage.make("A")), backend)
    assert not types.emitted
    assert types.warnings == []


def test_render_interface():
    def add(request: Request): ...
    def delete(todo: Todo): ...

    page = (
        ServerPage.make("T")
        .loader(lambda: {"todos": EntityCollection(), "completedCount": Prop.defer(lambda: 1)})
        .post("addTodo", add)
        .action("deleteTodo", delete)
    )
    text = render_interface(infer_page(base("todos/index"), loaded(page, Todo=Todo), backend))

    assert text == textwrap.dedent(
        """\
        export interface TodosIndexProps extends SharedData {
          actions: {
            addTodo: string;
            deleteTodo?: string;
          };
          todos: Todo[];
          completedCount?: number;
          [key: string]: unknown; // Allow additional props
        }
        """
    )


def test_render_page_types_module_sorts_imports_and_keeps_page_order():
    a = infer_page(base("zeta"), loaded(ServerPage.make("Z").loader(lambda: {"c": Category(name="x")})), backend)
    b = infer_page(base("alpha"), loaded(ServerPage.make("A").loader(lambda: {"t": Todo(id=1, title="t")})), backend)
    skipped = infer_page(base("gone"), None, backend)

    text = render_page_types_module([a, b, skipped])
    assert text.startswith("/**\n")
    assert "import type { Category } from './models';\nimport type { SharedData } from './index';\nimport type { Todo } from './models';\n" in text
    assert text.index("ZetaProps") < text.index("AlphaProps")
    assert "GoneProps" not in text


def test_no_interfaces_means_no_module():
    assert render_page_types_module([infer_page(base("a"), None, backend)]) is None


def test_annotation_mapping():
    referenced = set()
    assert annotation_to_ts(str, backend) == "string"
    assert annotation_to_ts(dt.datetime, backend) == "string"
    assert annotation_to_ts(Decimal, backend) == "number"
    assert annotation_to_ts(bool, backend) == "boolean"
    assert annotation_to_ts(Optional[int], backend) == "number | null"
    assert annotation_to_ts(list[Optional[str]], backend) == "(string | null)[]"
    assert annotation_to_ts(dict[str, int], backend) == "Record<string, unknown>"
    assert annotation_to_ts(list[Tag], backend, referenced) == "Tag[]"
    assert referenced == {Tag}
    assert annotation_to_ts(complex, backend) == "unknown"


def test_models_module_includes_referenced_entities_sorted():
    text = render_models_module([Todo], backend)

    assert text.index("export interface Tag {") < text.index("export interface Todo {")
    assert textwrap.dedent(
        """\
        export interface Todo {
          id: number;
          title: string;
          done: boolean;
          due: string | null;
          tags: Tag[];
        }
        """
    ) in text
    assert render_models_module([], backend) is None


def test_hint_naming_a_module_that_fails_to_import_is_unresolved(tmp_path: Path, monkeypatch):
    (tmp_path / "exploding_models.py").write_text("raise RuntimeError('boom at import')\n", encoding="utf-8")
    monkeypatch.syspath_prepend(str(tmp_path))

    page = ServerPage.make("T").loader(lambda: {"owner": None}).types({"owner": "exploding_models.Owner"})
    types = infer_page(base("t"), loaded(page), backend)

    assert types.emitted
    assert field_map(types)["owner"].expression == "unknown"
    assert len(types.warnings) == 1
