from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

HttpMethod = Literal["GET", "POST", "PUT", "PATCH", "DELETE"]


class RouteEntry(BaseModel):
    """One emitted route: METHOD uri -> handler_module.handler_function, named `name`."""

    model_config = ConfigDict(frozen=True)

    method: HttpMethod
    uri: str
    name: str
    handler_module: str
    handler_function: str
    page: str = ""
    middleware: list[str] = Field(default_factory=list)

    @property
    def handler(self) -> str:
        return f"{self.handler_module}.{self.handler_function}"


class PageRoutes(BaseModel):
    """The index route and action routes derived for one page."""

    model_config = ConfigDict(frozen=True)

    page: str
    uri: str
    route_name: str
    module: str
    index: RouteEntry
    actions: list[RouteEntry] = Field(default_factory=list)

    @property
    def entries(self) -> list[RouteEntry]:
        return [self.index, *self.actions]
