"""Tests for the Document model."""

from hxengine.dom import Document, FileField, add_class, remove_class
from hxengine.dom.document import attr, closest_attr, closest_attr_with_owner
from tests.helpers import page


def make_document(body: str) -> Document:
    return Document(page(body, title="Docs"))


class TestSelection:
    def test_title_read_and_write(self):
        doc = make_document("<p>x</p>")
        assert doc.title == "Docs"
        doc.title = "Changed"
        assert doc.title == "Changed"
        assert "<title>Changed</title>" in doc.html()

    def test_invalid_selector_returns_nothing(self):
        doc = make_document("<p>x</p>")
        assert doc.select("p[") == []
        assert doc.select_one("p[") is None

    def test_contains_uses_identity(self):
        doc = make_document('<div id="a"><p>same</p></div>')
        other = make_document('<div id="a"><p>same</p></div>')
        assert doc.contains(doc.get_by_id("a"))
        assert not doc.contains(other.get_by_id("a"))
        detached = doc.get_by_id("a").extract()
        assert not doc.contains(detached)
        assert not doc.contains(None)

    def test_resolve_extended_selectors(self):
        doc = make_document(
            '<form id="f"><div id="row"><button id="b">go</button><input id="i" name="q"></div></form>'
            '<p class="after">after</p>'
        )
        button = doc.get_by_id("b")
        assert doc.resolve(button, "this") == [button]
        assert doc.resolve_one(button, "closest form") is doc.get_by_id("f")
        assert doc.resolve_one(doc.get_by_id("row"), "find input") is doc.get_by_id("i")
        assert doc.resolve_one(button, "next") is doc.get_by_id("i")
        assert doc.resolve_one(button, "next .after") is doc.select_one("p.after")
        assert doc.resolve_one(doc.get_by_id("i"), "previous") is button
        assert doc.resolve_one(button, "body") is doc.body
        assert doc.resolve_one(button, "#i") is doc.get_by_id("i")
        assert doc.resolve(button, "closest table") == []

    def test_selector_for_round_trips_to_the_same_element(self):
        doc = make_document("<div><span>a</span></div><div><span>b</span><span>c</span></div>")
        target = doc.select("span")[2]
        selector = doc.selector_for(target)
        assert selector == "body > div:nth-of-type(2) > span:nth-of-type(2)"
        assert doc.select_one(selector) is target

    def test_selector_for_prefers_id(self):
        doc = make_document('<div id="box"><span>a</span></div>')
        assert doc.selector_for(doc.get_by_id("box")) == "#box"
        assert doc.selector_for(doc.select_one("span")) == "#box > span:nth-of-type(1)"


class TestDirectives:
    def test_data_prefix_is_accepted(self):
        doc = make_document('<div id="d" data-hx-get="/x"></div>')
        assert attr(doc.get_by_id("d"), "hx-get") == "/x"

    def test_closest_attr_walks_ancestors(self):
        doc = make_document('<section hx-target="#out"><div><button id="b"></button></div></section>')
        assert closest_attr(doc.get_by_id("b"), "hx-target") == "#out"
        assert closest_attr(doc.get_by_id("b"), "hx-swap") is None

    def test_closest_attr_with_owner(self):
        doc = make_document('<section id="s" hx-target="this"><button id="b"></button></section>')
        value, owner = closest_attr_with_owner(doc.get_by_id("b"), "hx-target")
        assert value == "this"
        assert owner is doc.get_by_id("s")
        assert closest_attr_with_owner(doc.get_by_id("b"), "hx-swap") == (None, None)


class TestValues:
    def test_field_values(self):
        doc = make_document(
            '<form id="f">'
            '<input name="text" value="hello">'
            '<input type="checkbox" name="on" checked>'
            '<input type="checkbox" name="off" value="x">'
            '<input type="radio" name="r" value="1"><input type="radio" name="r" value="2" checked>'
            '<select name="s"><option value="a">A</option><option value="b" selected>B</option></select>'
            '<select name="m" multiple><option selected>x</option><option>y</option><option selected>z</option></select>'
            '<textarea name="t">typed</textarea>'
            '<input name="disabled" value="no" disabled>'
            '<input type="submit" name="go" value="Go">'
            '</form>'
        )
        pairs = []
        for field in Document.fields_in(doc.get_by_id("f")):
            pairs.extend(doc.field_values(field))
        assert pairs == [
            ("text", "hello"),
            ("on", "on"),
            ("r", "2"),
            ("s", "b"),
            ("m", "x"),
            ("m", "z"),
            ("t", "typed"),
        ]

    def test_set_value_and_checked(self):
        doc = make_document(
            '<input id="i" name="i"><textarea id="t" name="t"></textarea>'
            '<select id="s" name="s"><option>a</option><option>b</option></select>'
            '<input id="c" type="checkbox" name="c">'
        )
        doc.set_value(doc.get_by_id("i"), "typed")
        doc.set_value(doc.get_by_id("t"), "area")
        doc.set_value(doc.get_by_id("s"), "b")
        doc.set_checked(doc.get_by_id("c"))
        assert Document.value_of(doc.get_by_id("i")) == "typed"
        assert Document.value_of(doc.get_by_id("t")) == "area"
        assert Document.value_of(doc.get_by_id("s")) == "b"
        assert doc.field_values(doc.get_by_id("c")) == [("c", "on")]
        doc.set_checked(doc.get_by_id("c"), False)
        assert doc.field_values(doc.get_by_id("c")) == []

    def test_attached_files_belong_to_one_element(self):
        doc = make_document('<input id="a" type="file" name="a"><input id="b" type="file" name="b">')
        upload = FileField("notes.txt", b"hi", "text/plain")
        doc.attach_files(doc.get_by_id("a"), [upload])
        assert doc.files_of(doc.get_by_id("a")) == [upload]
        assert doc.files_of(doc.get_by_id("b")) == []
        assert Document.is_file_input(doc.get_by_id("a"))


def test_class_helpers():
    doc = make_document('<div id="d" class="one"></div>')
    element = doc.get_by_id("d")
    add_class(element, "two")
    add_class(element, "two")
    assert element["class"] == ["one", "two"]
    remove_class(element, "one")
    remove_class(element, "two")
    assert not element.has_attr("class")
