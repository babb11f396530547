from fastapi import Request

from serverpages.codegen.routes import (
    action_uri,
    detect_action_method,
    module_names,
    page_middleware,
    page_uri,
    render_routes_module,
    route_name,
    synthesize_page_routes,
)
from serverpages.definition.page import ServerPage
from serverpages.definition.signature import Param, ParamRole, Signature, classify
from serverpages.entities import Entity, ModelBackend
from serverpages.repo.scanner import PageBase

backend = ModelBackend()


class Todo(Entity):
    id: int
    title: str


def base(path: str) -> PageBase:
    return PageBase(segments=tuple(path.split("/")))


def test_index_dropped_from_uri_but_kept_in_name():
    b = base("todos/index")
    assert page_uri(b) == "/todos"
    assert route_name(b) == "todos.index"


def test_root_index_is_slash():
    assert page_uri(base("index")) == "/"
    assert route_name(base("index")) == "index"


def test_bracket_segments_become_path_params():
    b = base("users/[user]/edit")
    assert page_uri(b) == "/users/{user}/edit"
    assert route_name(b) == "users.user.edit"


def test_reserved_words_suffixed_in_name_only():
    b = base("class/new/index")
    assert page_uri(b) == "/class/new"
    assert route_name(b) == "class_.new_.index"


def test_signature_classification_by_annotation():
    def update(todo: Todo, request: Request, note: str):
        return None

    roles = [p.role for p in classify(Signature.of(update), backend)]
    assert roles == [ParamRole.ENTITY, ParamRole.PAYLOAD, ParamRole.VALUE]


def test_method_table():
    def entity_and_payload(todo: Todo, request: Request): ...
    def entity_only(todo: Todo): ...
    def payload_only(request: Request): ...
    def nothing(): ...

    assert detect_action_method(Signature.of(entity_and_payload), backend) == "PUT"
    assert detect_action_method(Signature.of(entity_only), backend) == "DELETE"
    assert detect_action_method(Signature.of(payload_only), backend) == "POST"
    assert detect_action_method(Signature.of(nothing), backend) == "POST"


def test_explicit_param_roles_need_no_annotations():
    sig = Signature.explicit([Param("todo", role=ParamRole.ENTITY)])
    assert detect_action_method(sig, backend) == "DELETE"


def test_action_uri_appends_first_entity_param():
    def delete_todo(todo: Todo): ...
    def add_todo(request: Request): ...

    assert action_uri("/todos", "deleteTodo", Signature.of(delete_todo), backend) == "/todos/deleteTodo/{todo}"
    assert action_uri("/todos", "addTodo", Signature.of(add_todo), backend) == "/todos/addTodo"
    assert action_uri("/", "addTodo", Signature.of(add_todo), backend) == "/addTodo"


def test_action_uri_does_not_repeat_page_param():
    def update(todo: Todo, request: Request): ...

    assert action_uri("/todos/{todo}", "update", Signature.of(update), backend) == "/todos/{todo}/update"


def test_delete_todo_scenario():
    def delete_todo(todo: Todo): ...

    page = ServerPage.make("Todos/Index").action("deleteTodo", delete_todo).freeze()
    routes = synthesize_page_routes(base("todos/index"), page, backend)

    (action,) = routes.actions
    assert action.method == "DELETE"
    assert action.uri == "/todos/deleteTodo/{todo}"
    assert action.name == "todos.index.deleteTodo"
    assert action.handler == "todos_index.deleteTodo"


def test_explicit_method_wins():
    def delete_todo(todo: Todo): ...

    page = ServerPage.make("T").patch("deleteTodo", delete_todo)
    routes = synthesize_page_routes(base("todos/index"), page, backend)
    assert routes.actions[0].method == "PATCH"


def test_middleware_defaults_to_web_group_then_declared():
    assert page_middleware(None) == ["web"]
    assert page_middleware(ServerPage.make("T").middleware(["auth", "web"])) == ["web", "auth"]
    assert page_middleware(ServerPage.make("T").middleware("auth"), web="site") == ["site", "auth"]


def test_index_route_and_component_only_page():
    routes = synthesize_page_routes(base("about"), None, backend)
    assert routes.index.method == "GET"
    assert routes.index.uri == "/about"
    assert routes.index.name == "about"
    assert routes.index.middleware == ["web"]
    assert routes.actions == []


def test_module_names_are_unique():
    names = module_names([base("users/[user]/edit"), base("users/user/edit"), base("index")])
    assert names["users/[user]/edit"] == "users_user_edit"
    assert names["users/user/edit"].startswith("users_user_edit__")
    assert names["index"] == "index"


def test_render_routes_module():
    page = ServerPage.make("Todos/Index").middleware("auth").post("addTodo", lambda request: None)
    routes = [
        synthesize_page_routes(base("about"), None, backend),
        synthesize_page_routes(base("todos/index"), page, backend),
    ]
    text = render_routes_module(routes, "app.http.pages")

    assert "from fastapi import APIRouter" in text
    assert "import app.http.pages.about as about_page" in text
    assert "import app.http.pages.todos_index as todos_index_page" in text
    assert (
        'router.add_api_route("/todos/addTodo", todos_index_page.addTodo, methods=["POST"], '
        'name="todos.index.addTodo", dependencies=middleware("web", "auth"))'
    ) in text
    # discovery order is kept
    assert text.index('"/about"') < text.index('"/todos"')
    assert text.endswith("\n")
