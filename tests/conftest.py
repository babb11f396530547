import importlib
import sys
import textwrap
from pathlib import Path

import pytest

from serverpages.entities import ModelBackend
from serverpages.runtime.binding import clear_page_cache, use_backend
from serverpages.runtime.middleware import reset_middleware


def _write(p: Path, s: str) -> None:
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(textwrap.dedent(s).lstrip("\n"), encoding="utf-8")


@pytest.fixture(autouse=True)
def isolated_imports():
    """Each test project has its own `app` package; forget it afterwards."""
    saved_path = list(sys.path)
    yield
    for name in list(sys.modules):
        if name == "app" or name.startswith(("app.", "_serverpages_def_")):
            del sys.modules[name]
    sys.path[:] = saved_path
    importlib.invalidate_caches()
    clear_page_cache()
    reset_middleware()
    use_backend(ModelBackend())


MODELS = """
from serverpages.entities import Entity, EntityCollection


class Todo(Entity):
    id: int
    title: str
    completed: bool = False

    @classmethod
    def all(cls):
        return EntityCollection(TODOS.values())

    @classmethod
    def find(cls, key):
        return TODOS.get(key)


class User(Entity):
    id: int
    name: str
    email: str
    roles: list[str] = []

    @classmethod
    def find(cls, key):
        return USERS.get(key)


TODOS = {}
USERS = {}
"""

TODOS_PAGE = """
from fastapi import Request
from fastapi.responses import JSONResponse

from app.models import TODOS, Todo
from serverpages.definition.page import ServerPage
from serverpages.definition.props import Prop


def load():
    return {
        "todos": Todo.all(),
        "completedCount": Prop.defer(lambda: sum(1 for t in TODOS.values() if t.completed)),
        "tags": Prop.merge(lambda: ["home", "work"]),
    }


async def add_todo(request: Request):
    data = await request.json()
    todo = Todo(id=len(TODOS) + 1, title=data["title"])
    TODOS[str(todo.id)] = todo


async def update_todo(todo: Todo, request: Request):
    data = await request.json()
    todo.title = data.get("title", todo.title)
    return JSONResponse({"todo": todo.model_dump()})


def delete_todo(todo: Todo):
    TODOS.pop(str(todo.id), None)


page = (
    ServerPage.make("Todos/Index")
    .middleware("auth")
    .loader(load)
    .post("addTodo", add_todo)
    .action("updateTodo", update_todo)
    .action("deleteTodo", delete_todo)
)
"""

USER_EDIT_PAGE = """
from fastapi import Request

from app.models import User
from serverpages.definition.page import ServerPage
from serverpages.definition.props import Prop


def load(user: User):
    return {
        "user": user,
        "roles": Prop.optional(lambda: user.roles),
    }


async def update_profile(user: User, request: Request):
    data = await request.json()
    user.name = data["name"]


page = (
    ServerPage.make("Users/Edit")
    .middleware("auth")
    .loader(load)
    .types({"user": User})
    .put("updateProfile", update_profile)
)
"""


@pytest.fixture
def todo_project(tmp_path: Path) -> Path:
    """A small project: todos with actions, an entity-bound user page, a plain page and an ignored one."""
    root = tmp_path / "proj"
    _write(
        root / "pyproject.toml",
        """
        [project]
        name = "demo"
        version = "0.0.0"

        [tool.serverpages]
        pages_dir = "pages"
        ignore = ["auth/*"]
        """,
    )
    _write(root / "app" / "models.py", MODELS)
    _write(root / "pages" / "todos" / "index.page.py", TODOS_PAGE)
    _write(root / "pages" / "todos" / "index.tsx", "export default function Index() {}\n")
    _write(root / "pages" / "users" / "[user]" / "edit.page.py", USER_EDIT_PAGE)
    _write(root / "pages" / "users" / "[user]" / "edit.tsx", "export default function Edit() {}\n")
    _write(root / "pages" / "about.tsx", "export default function About() {}\n")
    _write(root / "pages" / "auth" / "login.tsx", "export default function Login() {}\n")
    return root
