"""
api/registry.py -- Route discovery and the dispatch table.

Startup only. discover() walks the routes directory, loads every route module,
validates what it exports and compiles one GuardChain per route. The result is
a DispatchTable: an immutable (METHOD, path) -> CompiledRoute mapping that the
app factory mounts on FastAPI before the app accepts a single request. There is
no reload and no write path at runtime.

Walk rules:
  - Entries are visited in sorted order, files of a directory before its
    subdirectories, so "first registration wins" is deterministic.
  - Only *.py files are loaded. Names starting with "_" or "." are skipped
    (__init__.py, __pycache__, private helpers).
  - A module that fails to import, a malformed export, or an unreadable
    directory is skipped with a warning. Nothing found during the walk can
    abort startup, and a broken subtree never hides its siblings.
  - A (method, path) pair that is already registered is dropped with a
    warning; the first registration stays active.

Every skip is recorded as a StartupDiscoveryWarning in RouteRegistry.issues.
"""

from __future__ import annotations

import importlib.util
import logging
import sys
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType, ModuleType
from typing import Any, Optional

from fastapi import Depends, FastAPI
from starlette.requests import Request
from starlette.responses import Response

from api import boundary
from api.guard_chain import GuardChain
from api.routing import Route, RouteContext
from core.errors import RouteDefinitionError, StartupDiscoveryWarning

logger = logging.getLogger("stormstarter.routes")

ROUTES_ATTRIBUTE = "routes"
_MODULE_NAMESPACE = "_stormstarter_routes"


@dataclass(frozen=True)
class CompiledRoute:
    route: Route
    chain: GuardChain
    source: str

    async def __call__(self, request: Request) -> Response:
        try:
            return await self.chain(request)
        except Exception as exc:
            return boundary.to_response(exc, request)


class DispatchTable(Mapping[tuple[str, str], CompiledRoute]):
    """Read-only (METHOD, path) -> CompiledRoute mapping."""

    def __init__(self, routes: Mapping[tuple[str, str], CompiledRoute]) -> None:
        self._routes = MappingProxyType(dict(routes))

    def __getitem__(self, key: tuple[str, str]) -> CompiledRoute:
        return self._routes[key]

    def __iter__(self) -> Iterator[tuple[str, str]]:
        return iter(self._routes)

    def __len__(self) -> int:
        return len(self._routes)

    def mount(self, app: FastAPI) -> None:
        """Register one FastAPI endpoint per compiled route."""
        for (method, path), compiled in self._routes.items():
            app.add_api_route(
                path,
                _endpoint(compiled),
                methods=[method],
                name=f"{method} {path}",
                dependencies=[Depends(dep) for dep in compiled.route.static_middleware],
                response_model=None,
            )


def _endpoint(compiled: CompiledRoute):
    async def endpoint(request: Request) -> Response:
        return await compiled(request)

    endpoint.__name__ = getattr(compiled.route.handler, "__name__", "endpoint")
    endpoint.__doc__ = getattr(compiled.route.handler, "__doc__", None)
    return endpoint


def _list_directory(directory: Path) -> list[Path]:
    return sorted(directory.iterdir())


class RouteRegistry:
    """Collects routes during startup, then publishes a DispatchTable once."""

    def __init__(self, context: Optional[RouteContext] = None, guard_timeout: Optional[float] = None) -> None:
        self._context = context
        self._guard_timeout = guard_timeout
        self._entries: dict[tuple[str, str], CompiledRoute] = {}
        self._table: Optional[DispatchTable] = None
        self.issues: list[StartupDiscoveryWarning] = []

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, candidate: Any, source: str = "<inline>") -> bool:
        """Validate and register one route. Returns False if it was skipped."""
        self._ensure_open()
        try:
            route = Route.coerce(candidate)
        except RouteDefinitionError as exc:
            self._skip(source, f"malformed route: {exc}")
            return False

        existing = self._entries.get(route.key)
        if existing is not None:
            self._skip(
                source,
                f"duplicate route [{route.method}] {route.path} dropped; already registered by {existing.source}",
            )
            return False

        chain = GuardChain(route.guards, route.handler, timeout=self._guard_timeout)
        self._entries[route.key] = CompiledRoute(route=route, chain=chain, source=source)
        logger.debug('[ROUTE] [%s] PATH: "%s" (%s)', route.method, route.path, source)
        return True

    def register_export(self, exported: Any, source: str) -> int:
        """Register whatever a module exported: one route, many, or a constructor.

        Returns the number of routes registered.
        """
        self._ensure_open()
        if callable(exported):
            try:
                exported = exported(self._context)
            except Exception as exc:
                self._skip(source, f"route constructor failed: {type(exc).__name__}: {exc}")
                return 0

        if isinstance(exported, (Route, Mapping)):
            candidates: Sequence[Any] = [exported]
        elif isinstance(exported, Sequence) and not isinstance(exported, (str, bytes)):
            candidates = exported
        else:
            self._skip(source, f"'{ROUTES_ATTRIBUTE}' must be a Route, a sequence of routes or a constructor")
            return 0

        registered = 0
        for candidate in candidates:
            try:
                registered += self.register(candidate, source)
            except Exception as exc:
                self._skip(source, f"could not register route: {type(exc).__name__}: {exc}")
        return registered

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    def discover(self, root: str | Path) -> DispatchTable:
        """Walk root recursively, register every route found, and build the table."""
        root_path = Path(root).resolve()
        if not root_path.is_dir():
            self._skip(str(root_path), "routes directory does not exist")
        else:
            self._walk(root_path, root_path)
        table = self.build()
        logger.info("Route discovery finished: %d route(s), %d warning(s)", len(table), len(self.issues))
        return table

    def build(self) -> DispatchTable:
        if self._table is None:
            self._table = DispatchTable(self._entries)
        return self._table

    def _walk(self, directory: Path, root: Path) -> None:
        try:
            entries = _list_directory(directory)
        except OSError as exc:
            self._skip(str(directory), f"unreadable directory: {exc.strerror or exc}")
            return

        subdirectories: list[Path] = []
        for entry in entries:
            if entry.name.startswith(("_", ".")):
                continue
            try:
                if entry.is_dir():
                    subdirectories.append(entry)
                elif entry.is_file() and entry.suffix == ".py":
                    self._load_file(entry, root)
            except OSError as exc:
                self._skip(str(entry), f"could not stat: {exc.strerror or exc}")

        for subdirectory in subdirectories:
            self._walk(subdirectory, root)

    def _load_file(self, path: Path, root: Path) -> None:
        source = str(path.relative_to(root))
        module = self._load_module(path, root)
        if module is None:
            return
        if not hasattr(module, ROUTES_ATTRIBUTE):
            self._skip(source, f"module does not export '{ROUTES_ATTRIBUTE}'")
            return
        self.register_export(getattr(module, ROUTES_ATTRIBUTE), source)

    def _load_module(self, path: Path, root: Path) -> Optional[ModuleType]:
        relative = path.relative_to(root).with_suffix("")
        module_name = ".".join((_MODULE_NAMESPACE, *relative.parts))
        spec = importlib.util.spec_from_file_location(module_name, path)
        if spec is None or spec.loader is None:
            self._skip(str(path.relative_to(root)), "not a loadable module")
            return None
        module = importlib.util.module_from_spec(spec)
        # Registered before exec so dataclasses/pydantic inside the module can
        # resolve their own module by name.
        sys.modules[module_name] = module
        try:
            spec.loader.exec_module(module)
        except Exception as exc:
            sys.modules.pop(module_name, None)
            logger.debug("Import of %s failed", path, exc_info=True)
            self._skip(str(path.relative_to(root)), f"could not load module: {type(exc).__name__}: {exc}")
            return None
        return module

    def _ensure_open(self) -> None:
        if self._table is not None:
            raise RuntimeError("routes cannot be registered after the dispatch table is built")

    def _skip(self, location: str, reason: str) -> None:
        issue = StartupDiscoveryWarning(location, reason)
        self.issues.append(issue)
        logger.warning("Skipping %s: %s", location, reason)


def discover(
    root: str | Path,
    context: Optional[RouteContext] = None,
    guard_timeout: Optional[float] = None,
) -> DispatchTable:
    """Convenience wrapper: a fresh registry, one walk, one table."""
    return RouteRegistry(context, guard_timeout=guard_timeout).discover(root)
