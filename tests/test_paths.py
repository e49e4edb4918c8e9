from routeseq.extractors.spring.paths import combine_paths, normalize_path


def test_normalize_adds_leading_and_drops_trailing_slash():
    assert normalize_path("users") == "/users"
    assert normalize_path("/users/") == "/users"
    assert normalize_path("  /users  ") == "/users"
    assert normalize_path("/") == "/"
    assert normalize_path("") == ""
    assert normalize_path(None) == ""


def test_combine_with_root_base_is_normalized_method_path():
    for p in ["/a", "/a/b", "/{id}", "/x/y/z", "/"]:
        assert combine_paths("/", p) == normalize_path(p)
        assert combine_paths(p, "/") == normalize_path(p)


def test_combine_base_and_method():
    assert combine_paths("/api/users", "/{id}") == "/api/users/{id}"
    assert combine_paths("api/users/", "{id}/") == "/api/users/{id}"
    assert combine_paths("/api", "") == "/api"
    assert combine_paths("", "") == "/"
    assert combine_paths("/", "/") == "/"
    assert combine_paths(None, "/health") == "/health"


def test_combine_never_produces_double_slash():
    bases = ["", "/", "/api", "/api/", "api"]
    methods = ["", "/", "/x", "x/", "/x/"]
    for b in bases:
        for m in methods:
            combined = combine_paths(b, m)
            assert "//" not in combined
            assert combined.startswith("/")
            assert combined == "/" or not combined.endswith("/")
