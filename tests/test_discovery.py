import textwrap

import pytest

from fakes import HEALTH_CONTROLLER, USER_CONTROLLER, write_project
from routeseq.extractors.spring.discovery import (
    discover_endpoints,
    discover_endpoints_in_file,
    find_controller_classes,
    find_endpoints_in_class,
)
from routeseq.providers.java_source import SourceDocument
from routeseq.providers.java_symbols import JavaSymbolProvider, outline_java
from routeseq.shared.cancellation import CancellationToken


def _labels(endpoints):
    return sorted((e.http_method, e.path, e.handler_name) for e in endpoints)


def test_controller_classes_and_base_path():
    doc = SourceDocument("UserController.java", USER_CONTROLLER)
    controllers = find_controller_classes(doc, outline_java(doc))
    assert [(c.symbol.name, c.base_path) for c in controllers] == [("UserController", "/api/users")]


def test_nested_and_sibling_classes_need_their_own_annotation():
    doc = SourceDocument("HealthController.java", HEALTH_CONTROLLER)
    controllers = find_controller_classes(doc, outline_java(doc))
    assert [(c.symbol.name, c.base_path) for c in controllers] == [("HealthController", "/")]


def test_endpoints_in_class_expand_multiple_paths():
    doc = SourceDocument("UserController.java", USER_CONTROLLER)
    ctrl = find_controller_classes(doc, outline_java(doc))[0]
    endpoints = find_endpoints_in_class(doc, ctrl.symbol, ctrl.base_path)

    assert _labels(endpoints) == [
        ("GET", "/api/users", "list"),
        ("GET", "/api/users/all", "list"),
        ("GET", "/api/users/{id}", "get"),
        ("POST", "/api/users", "create"),
    ]
    # both "list" descriptors share the handler location
    lists = [e for e in endpoints if e.handler_name == "list"]
    assert lists[0].location == lists[1].location

    get = next(e for e in endpoints if e.handler_name == "get")
    assert get.location.position.line == 15
    assert get.location.position.character == 16
    assert get.annotation_span == (14, 17)


def test_one_line_controller():
    src = '@RestController\n@RequestMapping("/api/users")\npublic class C { @GetMapping("/{id}") public String get(...) {...} }'
    doc = SourceDocument("C.java", src)
    ctrl = find_controller_classes(doc, outline_java(doc))[0]
    endpoints = find_endpoints_in_class(doc, ctrl.symbol, ctrl.base_path)
    assert _labels(endpoints) == [("GET", "/api/users/{id}", "get")]


def test_annotations_do_not_leak_into_next_method():
    src = textwrap.dedent(
        """\
        @RestController
        public class Mixed {
            @DeleteMapping("/gone")
            public void remove() {}
            public void notAnEndpoint() {}
            @PatchMapping("/patched/")
            public void patch() {}
        }
        """
    )
    doc = SourceDocument("Mixed.java", src)
    ctrl = find_controller_classes(doc, outline_java(doc))[0]
    endpoints = find_endpoints_in_class(doc, ctrl.symbol, ctrl.base_path)
    assert _labels(endpoints) == [
        ("DELETE", "/gone", "remove"),
        ("PATCH", "/patched", "patch"),
    ]


@pytest.mark.asyncio
async def test_discover_endpoints_over_project(tmp_path):
    write_project(tmp_path)
    endpoints = await discover_endpoints(JavaSymbolProvider(tmp_path))

    assert _labels(endpoints) == [
        ("GET", "/api/users", "list"),
        ("GET", "/api/users/all", "list"),
        ("GET", "/api/users/{id}", "get"),
        ("GET", "/health", "health"),
        ("GET", "/legacy/ping", "ping"),
        ("POST", "/api/users", "create"),
        ("POST", "/legacy/submit", "submit"),
    ]
    # nothing from target/ or from the non-controller Jobs class
    assert all("target" not in e.location.file for e in endpoints)


@pytest.mark.asyncio
async def test_unreadable_file_is_skipped(tmp_path):
    write_project(tmp_path)

    class Flaky(JavaSymbolProvider):
        async def document_symbols(self, file):
            if file.endswith("LegacyController.java"):
                raise OSError("disk on fire")
            return await super().document_symbols(file)

    endpoints = await discover_endpoints(Flaky(tmp_path))
    handlers = {e.handler_name for e in endpoints}
    assert "ping" not in handlers and "submit" not in handlers
    assert {"get", "create", "list", "health"} <= handlers


@pytest.mark.asyncio
async def test_discover_in_file_non_controller_is_empty(tmp_path):
    write_project(tmp_path)
    provider = JavaSymbolProvider(tmp_path)
    jobs = str(tmp_path / "src/main/java/com/example/util/Jobs.java")
    assert await discover_endpoints_in_file(provider, jobs) == []


@pytest.mark.asyncio
async def test_cancelled_discovery_returns_nothing(tmp_path):
    write_project(tmp_path)
    token = CancellationToken()
    token.cancel()
    assert await discover_endpoints(JavaSymbolProvider(tmp_path), token=token) == []


@pytest.mark.asyncio
async def test_listing_failure_yields_empty_result(tmp_path):
    class Broken(JavaSymbolProvider):
        async def list_files(self, glob):
            raise PermissionError("nope")

    assert await discover_endpoints(Broken(tmp_path)) == []
