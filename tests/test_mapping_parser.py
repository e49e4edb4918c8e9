import textwrap

from routeseq.extractors.spring.mapping import MappingRule, is_controller_block, parse_mapping_annotations


def test_verb_specific_annotation_with_single_path():
    info = parse_mapping_annotations('@GetMapping("/users")\npublic List<User> ')
    assert info is not None
    assert info.http_method == "GET"
    assert info.paths == ("/users",)


def test_each_verb_annotation_maps_to_its_method():
    for ann, verb in [
        ("GetMapping", "GET"),
        ("PostMapping", "POST"),
        ("PutMapping", "PUT"),
        ("DeleteMapping", "DELETE"),
        ("PatchMapping", "PATCH"),
    ]:
        info = parse_mapping_annotations(f'@{ann}("/x")')
        assert info.http_method == verb
        assert info.paths == ("/x",)


def test_path_is_trimmed_but_trailing_slash_is_kept():
    assert parse_mapping_annotations('@GetMapping("  /users/ ")').paths == ("/users/",)


def test_request_mapping_defaults_to_get():
    info = parse_mapping_annotations('@RequestMapping("/legacy")')
    assert info.http_method == "GET"
    assert info.paths == ("/legacy",)


def test_request_mapping_multiline_with_method_attribute():
    block = textwrap.dedent(
        """
        @RequestMapping(
            value = "/orders",
            method = RequestMethod.POST,
            produces = "application/json"
        )
        """
    )
    info = parse_mapping_annotations(block)
    assert info.http_method == "POST"
    assert info.paths == ("/orders",)


def test_array_of_paths_yields_every_path():
    info = parse_mapping_annotations('@GetMapping({"/a", "/b/"})')
    assert info.paths == ("/a", "/b/")


def test_path_key_with_array():
    info = parse_mapping_annotations('@PutMapping(path = {"/x", "/y"}, consumes = "text/plain")')
    assert info.http_method == "PUT"
    assert info.paths == ("/x", "/y")


def test_keyed_array_with_path_variables():
    info = parse_mapping_annotations('@GetMapping(path = {"/users/{id}", "/members/{id}"})')
    assert info.http_method == "GET"
    assert info.paths == ("/users/{id}", "/members/{id}")


def test_keyed_array_followed_by_other_attributes():
    info = parse_mapping_annotations('@GetMapping(value = {"/{id}"}, produces = "application/json")')
    assert info.paths == ("/{id}",)

    block = textwrap.dedent(
        """
        @RequestMapping(
            value = {"/a/{x}", "/b/{y}/c"},
            method = {RequestMethod.DELETE}
        )
        """
    )
    info = parse_mapping_annotations(block)
    assert info.http_method == "DELETE"
    assert info.paths == ("/a/{x}", "/b/{y}/c")


def test_value_key_with_single_string():
    info = parse_mapping_annotations('@DeleteMapping(value = "/items/{id}")')
    assert info.http_method == "DELETE"
    assert info.paths == ("/items/{id}",)


def test_no_path_key_defaults_to_root():
    info = parse_mapping_annotations("@RequestMapping(method = RequestMethod.PUT)")
    assert info.http_method == "PUT"
    assert info.paths == ("/",)

    bare = parse_mapping_annotations("@PostMapping\npublic void save(")
    assert bare.http_method == "POST"
    assert bare.paths == ("/",)


def test_multi_verb_method_attribute_keeps_first_verb_only():
    info = parse_mapping_annotations(
        '@RequestMapping(value = "/both", method = {RequestMethod.GET, RequestMethod.POST})'
    )
    assert info.http_method == "GET"
    assert info.paths == ("/both",)


def test_last_annotation_wins():
    block = '@RequestMapping("/generic")\n@PostMapping("/specific")\n'
    info = parse_mapping_annotations(block)
    assert info.http_method == "POST"
    assert info.paths == ("/specific",)
    assert info.offset == block.index("@PostMapping")


def test_unrelated_annotations_and_comments_are_ignored():
    block = textwrap.dedent(
        """
        @Deprecated
        @Operation(summary = "fetch (by id)", description = "x = y")
        /* returns one user */
        @GetMapping("/{id}")
        @ResponseStatus(HttpStatus.OK)
        """
    )
    info = parse_mapping_annotations(block)
    assert info.http_method == "GET"
    assert info.paths == ("/{id}",)


def test_equals_and_parens_inside_strings_do_not_confuse_parser():
    info = parse_mapping_annotations('@GetMapping("/search(q=1)")')
    assert info.paths == ("/search(q=1)",)


def test_no_route_annotation_returns_none():
    assert parse_mapping_annotations("") is None
    assert parse_mapping_annotations("@Override\npublic String toString(") is None
    assert parse_mapping_annotations("// just a comment") is None


def test_rules_are_data():
    rules = (MappingRule("ReadMapping", "GET"), MappingRule("WriteMapping", "POST"))
    info = parse_mapping_annotations('@WriteMapping("/w")', rules)
    assert info.http_method == "POST"
    assert info.paths == ("/w",)
    # the default annotations are unknown to this rule set
    assert parse_mapping_annotations('@GetMapping("/g")', rules) is None


def test_controller_detection():
    assert is_controller_block("@RestController\npublic class ")
    assert is_controller_block("@Controller\n")
    assert is_controller_block("@org.springframework.stereotype.Controller\n")
    assert not is_controller_block("@Service\npublic class ")
    assert not is_controller_block("")
