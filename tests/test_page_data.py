import json

import pytest

from skool.page_data import (
    classroom_root_url,
    is_classroom_root_url,
    lesson_id_from_url,
    parse_classroom,
    parse_course_library,
    parse_lesson_page,
    render_body,
)

CLASSROOM = "https://www.skool.com/acme/classroom/abcd1234"


def node(node_id, title=None, name=None, children=None, **metadata):
    if title is not None:
        metadata["title"] = title
    course = {"id": node_id, "metadata": metadata}
    if name is not None:
        course["name"] = name
    return {"course": course, "children": children or []}


def next_data(**page_props):
    return {"props": {"pageProps": page_props}}


def test_parse_classroom_builds_dense_modules() -> None:
    course = {
        "metadata": {"title": "Growth Course", "coverImage": "https://cdn.example.com/cover.png"},
        "children": [
            node("s1", "Start", children=[node("a", "Welcome"), node(None, "No id"), node("b", name="b-name")]),
            node("s2", "Empty set", children=[]),
            node("s3", children=[node("c", "Wrap up")], name="Finale"),
        ],
    }
    data = next_data(course=course, currentGroup={"metadata": {"displayName": "Acme Club"}})

    tree = parse_classroom(data, CLASSROOM)

    assert tree.course_name == "Growth Course"
    assert tree.group_name == "Acme Club"
    assert tree.cover_image_url == "https://cdn.example.com/cover.png"
    assert [(m.index, m.title) for m in tree.modules] == [(1, "Start"), (2, "Finale")]
    assert [(l.index, l.title) for l in tree.modules[0].lessons] == [(1, "Welcome"), (3, "b-name")]
    assert tree.modules[0].lessons[0].url == f"{CLASSROOM}?md=a"
    assert tree.lessons_count == 3


def test_course_name_and_cover_fall_back_to_listing() -> None:
    course = {"id": "cid", "children": [node("s", "S", children=[node("a", "A")])]}
    listing = [{"name": "abcd1234", "id": "cid", "metadata": {"title": "Listed", "coverSmallUrl": "https://c/s.jpg"}}]
    data = next_data(course=course, renderData={"allCourses": listing}, currentGroup={"name": "acme"})

    tree = parse_classroom(data, CLASSROOM)

    assert tree.course_name == "Listed"
    assert tree.cover_image_url == "https://c/s.jpg"
    assert tree.group_name == "acme"


def test_parse_classroom_without_structure() -> None:
    with pytest.raises(ValueError):
        parse_classroom(next_data(course={"metadata": {}}), CLASSROOM)
    with pytest.raises(ValueError):
        parse_classroom(None, CLASSROOM)


def test_lesson_id_from_url() -> None:
    assert lesson_id_from_url(f"{CLASSROOM}?md=abc") == "abc"
    assert lesson_id_from_url(f"{CLASSROOM}?lesson=xyz") == "xyz"
    assert lesson_id_from_url(CLASSROOM) is None


def test_parse_lesson_page_finds_node_by_id() -> None:
    resources = json.dumps([{"title": "Guide.pdf", "file_id": "f1"}])
    course = {
        "children": [
            node("s", "S", children=[node("other", "Other"), node("m1", "Target", videoId="vid", desc="<p>Hi</p>", resources=resources)])
        ],
        "video": {"id": "vid", "playbackId": "PB", "playbackToken": "TK"},
    }

    page = parse_lesson_page(next_data(course=course), f"{CLASSROOM}?md=m1")

    assert page.lesson_id == "m1"
    assert page.title == "Target"
    assert page.body == "<p>Hi</p>"
    assert page.video_link is None
    assert page.video_id == "vid"
    assert page.page_video.playback_id == "PB"
    assert page.raw_resources == resources


def test_parse_lesson_page_falls_back_to_lesson_prop() -> None:
    lesson = {"id": "z", "name": "Standalone", "body": "text", "video": {"url": "https://youtu.be/q"}}

    page = parse_lesson_page(next_data(lesson=lesson), f"{CLASSROOM}?md=unknown")

    assert page.title == "Standalone"
    assert page.body == "text"
    assert page.video_link == "https://youtu.be/q"
    assert page.page_video is None


def test_render_body_plain_html_passes_through() -> None:
    assert render_body("<p>plain</p>") == "<p>plain</p>"
    assert render_body(None) == ""


def test_render_body_tiptap() -> None:
    doc = [
        {"type": "heading", "attrs": {"level": 3}, "content": [{"type": "text", "text": "Title"}]},
        {
            "type": "paragraph",
            "content": [
                {"type": "text", "text": "bold", "marks": [{"type": "bold"}]},
                {"type": "hardBreak"},
                {"type": "text", "text": "site", "marks": [{"type": "link", "attrs": {"href": "https://x.io"}}]},
            ],
        },
        {"type": "bulletList", "content": [{"type": "listItem", "content": [{"type": "paragraph", "content": [{"type": "text", "text": "a < b"}]}]}]},
        {"type": "image", "attrs": {"src": "https://cdn.example.com/p.png", "alt": "pic"}},
    ]

    html = render_body("[v2]" + json.dumps(doc))

    assert html == (
        "<h3>Title</h3>"
        '<p><b>bold</b><br/><a href="https://x.io">site</a></p>'
        "<ul><li><p>a &lt; b</p></li></ul>"
        '<img src="https://cdn.example.com/p.png" alt="pic" />'
    )


def test_render_body_broken_tiptap_is_kept_raw() -> None:
    assert render_body("[v2][{oops") == "[v2][{oops"


def test_classroom_root_url_detection() -> None:
    assert is_classroom_root_url("https://www.skool.com/acme/classroom")
    assert is_classroom_root_url("https://www.skool.com/acme/classroom/?x=1")
    assert not is_classroom_root_url(CLASSROOM)
    assert not is_classroom_root_url("https://www.skool.com/acme/about")
    assert classroom_root_url(f"{CLASSROOM}?md=abc#top") == "https://www.skool.com/acme/classroom"


def test_parse_course_library() -> None:
    data = next_data(
        currentGroup={"metadata": {"displayName": "Acme Group"}},
        renderData={
            "allCourses": [
                {
                    "id": "c1",
                    "name": "intro",
                    "updatedAt": "2026-01-02T00:00:00Z",
                    "metadata": {
                        "title": "Intro",
                        "numModules": 3,
                        "coverSmallUrl": "https://cdn.example.com/small.png",
                        "image": "https://cdn.example.com/image.png",
                        "hasAccess": 1,
                    },
                },
                {"id": "c2", "metadata": {"hasAccess": 0, "privacy": 1}},
                {"metadata": {"title": "Unlinkable"}},
                "garbage",
                {"name": "bare"},
            ]
        },
    )

    library = parse_course_library(data, f"{CLASSROOM}?md=x")

    assert library.group_name == "Acme Group"
    assert library.classroom_url == "https://www.skool.com/acme/classroom"
    intro, locked, bare = library.courses
    assert intro.url == "https://www.skool.com/acme/classroom/intro"
    assert intro.key == "c1"
    assert intro.title == "Intro"
    assert intro.num_modules == 3
    assert intro.cover_image_url == "https://cdn.example.com/small.png"
    assert intro.has_access is True
    assert intro.updated_at == "2026-01-02T00:00:00Z"
    assert not intro.locked
    assert locked.url.endswith("/classroom/c2")
    assert locked.title == "c2"
    assert locked.has_access is False
    assert locked.locked
    assert bare.title == "bare"
    assert bare.has_access is None
    assert not bare.locked


def test_parse_course_library_without_courses() -> None:
    with pytest.raises(ValueError):
        parse_course_library(next_data(allCourses=[]), CLASSROOM)

    with pytest.raises(ValueError):
        parse_course_library(next_data(allCourses=[{"metadata": {}}]), CLASSROOM)
