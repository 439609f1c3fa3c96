"""
Tolerant reader for the ``__NEXT_DATA__`` payload of classroom pages.

The payload is untyped JSON where most fields are optional and move around
between page versions. Each field of interest has one resolver function that
walks an explicit fallback chain; the first non-empty value wins and the
chain order is documented on the function.
"""
import json
from dataclasses import dataclass
from html import escape
from urllib.parse import parse_qs, urlparse, urlunparse

from .logger import Logger
from .models import CourseLibrary, CourseListItem, CourseTree, Lesson, Module


def dig(data, *keys):
    """Follow `keys` through nested dicts, returning None on the first miss."""
    current = data
    for key in keys:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


def first_of(*values):
    for value in values:
        if value not in (None, "", [], {}):
            return value
    return None


@dataclass
class PageVideo:
    id: str | None = None
    playback_id: str | None = None
    playback_token: str | None = None


@dataclass
class LessonPageData:
    lesson_id: str | None = None
    title: str | None = None
    body: str | None = None
    video_link: str | None = None
    video_id: str | None = None
    page_video: PageVideo | None = None
    raw_resources: object = None


def page_props(next_data: dict | None) -> dict:
    props = dig(next_data, "props", "pageProps")
    return props if isinstance(props, dict) else {}


def url_handle(url: str) -> str:
    return urlparse(url).path.rstrip("/").split("/")[-1]


def lesson_id_from_url(url: str) -> str | None:
    """The lesson id travels in the `md` query parameter, older links use `lesson`."""
    query = parse_qs(urlparse(url).query)
    for key in ("md", "lesson"):
        if query.get(key):
            return query[key][0]
    return None


def classroom_root_url(url: str) -> str:
    """Cut a classroom URL back to `/<group>/classroom`, dropping query and fragment."""
    parsed = urlparse(url)
    segments = [segment for segment in parsed.path.split("/") if segment]
    if "classroom" in segments:
        segments = segments[: segments.index("classroom") + 1]
    return urlunparse((parsed.scheme, parsed.netloc, "/" + "/".join(segments), "", "", ""))


def is_classroom_root_url(url: str) -> bool:
    """True for `.../classroom` itself, i.e. the course listing rather than one course."""
    try:
        segments = [segment for segment in urlparse(url).path.split("/") if segment]
    except ValueError:
        return False
    return "classroom" in segments and segments.index("classroom") == len(segments) - 1


def _all_courses(props: dict) -> list:
    courses = first_of(props.get("allCourses"), dig(props, "renderData", "allCourses"))
    return courses if isinstance(courses, list) else []


def _find_listed_course(props: dict, handle: str, course_id: str | None = None) -> dict | None:
    for course in _all_courses(props):
        if not isinstance(course, dict):
            continue
        if course.get("name") == handle or (course_id and course.get("id") == course_id):
            return course
    return None


def resolve_group_name(props: dict) -> str:
    """currentGroup.metadata.displayName > currentGroup.metadata.name > currentGroup.name."""
    group = props.get("currentGroup") or {}
    return first_of(
        dig(group, "metadata", "displayName"),
        dig(group, "metadata", "name"),
        group.get("name") if isinstance(group, dict) else None,
    ) or "Unknown Group"


def resolve_course_name(props: dict, url: str) -> str:
    """course.metadata.title > course.course.metadata.title > allCourses[name == url handle].metadata.title."""
    course = props.get("course") or {}
    listed = _find_listed_course(props, url_handle(url)) or {}
    return first_of(
        dig(course, "metadata", "title"),
        dig(course, "course", "metadata", "title"),
        dig(listed, "metadata", "title"),
    ) or "Unknown Course"


def _cover_of(metadata) -> str | None:
    if not isinstance(metadata, dict):
        return None
    return first_of(metadata.get("coverImage"), metadata.get("image"), metadata.get("coverSmallUrl"))


def resolve_cover_image(props: dict, url: str) -> str | None:
    """
    course.metadata > course.course.metadata > matching allCourses entry;
    within each: coverImage > image > coverSmallUrl.
    """
    course = props.get("course") or {}
    listed = _find_listed_course(props, url_handle(url), course.get("id") if isinstance(course, dict) else None) or {}
    return first_of(
        _cover_of(course.get("metadata") if isinstance(course, dict) else None),
        _cover_of(dig(course, "course", "metadata")),
        _cover_of(listed.get("metadata")),
    )


def parse_modules(course: dict, classroom_url: str) -> list[Module]:
    """Sets become modules, their children become lessons. Lessons without id and empty modules are dropped."""
    modules: list[Module] = []
    for set_index, node in enumerate(course.get("children") or [], 1):
        if not isinstance(node, dict):
            continue
        info = node.get("course") or {}
        title = first_of(dig(info, "metadata", "title"), info.get("name")) or "Untitled Section"

        lessons: list[Lesson] = []
        for child_index, child in enumerate(node.get("children") or [], 1):
            if not isinstance(child, dict):
                continue
            child_info = child.get("course") or {}
            lesson_id = child_info.get("id")
            if not lesson_id:
                continue
            lessons.append(
                Lesson(
                    id=lesson_id,
                    title=first_of(dig(child_info, "metadata", "title"), child_info.get("name")) or "Untitled Lesson",
                    url=f"{classroom_url}?md={lesson_id}",
                    index=child_index,
                )
            )

        if lessons:
            modules.append(Module(index=set_index, title=title, lessons=lessons))

    # Re-number densely once empty sets are gone
    for index, module in enumerate(modules, 1):
        module.index = index
    return modules


def parse_classroom(next_data: dict | None, classroom_url: str) -> CourseTree:
    props = page_props(next_data)
    course = props.get("course")
    if not isinstance(course, dict) or not course.get("children"):
        raise ValueError("Course structure not found in __NEXT_DATA__")

    return CourseTree(
        course_name=resolve_course_name(props, classroom_url),
        group_name=resolve_group_name(props),
        cover_image_url=resolve_cover_image(props, classroom_url),
        modules=parse_modules(course, classroom_url),
    )


def find_lesson_node(node, lesson_id: str | None) -> dict | None:
    """Depth-first search for the `course` entry whose id is `lesson_id`."""
    if not isinstance(node, dict) or not lesson_id:
        return None
    info = node.get("course")
    if isinstance(info, dict) and info.get("id") == lesson_id:
        return info
    for child in node.get("children") or []:
        found = find_lesson_node(child, lesson_id)
        if found is not None:
            return found
    return None


def resolve_page_video(props: dict) -> PageVideo | None:
    """pageProps.video > pageProps.course.video."""
    video = first_of(props.get("video"), dig(props, "course", "video"))
    if not isinstance(video, dict):
        return None
    return PageVideo(
        id=video.get("id"),
        playback_id=video.get("playbackId"),
        playback_token=video.get("playbackToken"),
    )


def parse_lesson_page(next_data: dict | None, url: str) -> LessonPageData:
    """
    Pull one lesson out of a lesson page payload.

    The lesson node is found by id in the course tree, falling back to
    pageProps.lesson and then pageProps.course.course.
    """
    props = page_props(next_data)
    lesson_id = lesson_id_from_url(url)

    node = find_lesson_node(props.get("course"), lesson_id)
    if node is None:
        node = first_of(props.get("lesson"), dig(props, "course", "course")) or {}
    metadata = node.get("metadata") or {}

    return LessonPageData(
        lesson_id=first_of(lesson_id, node.get("id")),
        # metadata.title > node.name
        title=first_of(metadata.get("title"), node.get("name")),
        # metadata.desc > node.body
        body=first_of(metadata.get("desc"), node.get("body")),
        # metadata.videoLink > node.video.url
        video_link=first_of(metadata.get("videoLink"), dig(node, "video", "url")),
        video_id=metadata.get("videoId"),
        page_video=resolve_page_video(props),
        # metadata.resources > node.resources
        raw_resources=first_of(metadata.get("resources"), node.get("resources")),
    )


def render_body(body) -> str:
    """Lesson bodies are plain HTML or a "[v2]"-prefixed TipTap JSON document."""
    if not isinstance(body, str):
        return ""
    if not body.startswith("[v2]"):
        return body
    try:
        nodes = json.loads(body[4:])
    except json.JSONDecodeError as e:
        Logger.error(f"Failed to parse TipTap content: {e}")
        return body
    return render_tiptap(nodes if isinstance(nodes, list) else [nodes])


def render_tiptap(nodes: list) -> str:
    parts = []
    for node in nodes:
        if not isinstance(node, dict):
            continue
        kind = node.get("type")
        attrs = node.get("attrs") or {}
        content = node.get("content") or []

        if kind == "paragraph":
            parts.append(f"<p>{render_inline(content)}</p>")
        elif kind == "hardBreak":
            parts.append("<br/>")
        elif kind == "bulletList":
            parts.append(f"<ul>{render_tiptap(content)}</ul>")
        elif kind == "orderedList":
            parts.append(f"<ol>{render_tiptap(content)}</ol>")
        elif kind == "listItem":
            parts.append(f"<li>{render_tiptap(content)}</li>")
        elif kind == "heading":
            level = attrs.get("level") or 2
            parts.append(f"<h{level}>{render_inline(content)}</h{level}>")
        elif kind == "blockquote":
            parts.append(f"<blockquote>{render_tiptap(content)}</blockquote>")
        elif kind in ("image", "image-block") or attrs.get("src"):
            src = first_of(attrs.get("src"), attrs.get("url"), attrs.get("originalSrc"))
            if src:
                parts.append(f'<img src="{escape(src, quote=True)}" alt="{escape(attrs.get("alt") or "", quote=True)}" />')
        elif content:
            parts.append(f"<div>{render_tiptap(content)}</div>")
    return "".join(parts)


def render_inline(content: list) -> str:
    parts = []
    for item in content or []:
        if not isinstance(item, dict):
            continue
        if item.get("type") == "hardBreak":
            parts.append("<br/>")
            continue
        if item.get("type") != "text":
            continue
        text = escape(item.get("text") or "")
        for mark in item.get("marks") or []:
            if mark.get("type") == "bold":
                text = f"<b>{text}</b>"
            elif mark.get("type") == "italic":
                text = f"<i>{text}</i>"
            elif mark.get("type") == "link":
                href = dig(mark, "attrs", "href") or ""
                text = f'<a href="{escape(href, quote=True)}">{text}</a>'
        parts.append(text)
    return "".join(parts)


def _access_flag(value) -> bool | None:
    # hasAccess is 1/0 in the payload; anything else means unknown
    if value is True or value == 1:
        return True
    if value is False or value == 0:
        return False
    return None


def parse_course_listing(course: dict, base_url: str, position: int) -> CourseListItem | None:
    """
    One entry of ``allCourses``.

    title: metadata.title > name > id > "Course <position>";
    cover: metadata.coverImage > metadata.coverSmallUrl > metadata.image.
    Entries with neither name nor id cannot be linked and are dropped.
    """
    metadata = course.get("metadata") or {}
    if not isinstance(metadata, dict):
        metadata = {}
    slug = first_of(course.get("name"), course.get("id"))
    if not slug:
        return None

    url = f"{base_url}/{slug}"
    privacy = metadata.get("privacy")
    num_modules = metadata.get("numModules")
    return CourseListItem(
        id=course.get("id"),
        name=course.get("name"),
        title=str(first_of(metadata.get("title"), course.get("name"), course.get("id")) or f"Course {position}"),
        url=url,
        key=str(first_of(course.get("id"), course.get("name")) or url),
        num_modules=num_modules if isinstance(num_modules, int) else None,
        cover_image_url=first_of(metadata.get("coverImage"), metadata.get("coverSmallUrl"), metadata.get("image")),
        has_access=_access_flag(metadata.get("hasAccess")),
        privacy=privacy if isinstance(privacy, int) and not isinstance(privacy, bool) else None,
        updated_at=course.get("updatedAt"),
    )


def parse_course_library(next_data: dict | None, url: str) -> CourseLibrary:
    """Every course listed on a group's classroom page, in listing order."""
    props = page_props(next_data)
    listed = _all_courses(props)
    if not listed:
        raise ValueError("No courses found in classroom __NEXT_DATA__.")

    classroom_url = classroom_root_url(url)
    base_url = classroom_url.rstrip("/")
    courses = []
    for position, course in enumerate(listed, 1):
        if not isinstance(course, dict):
            continue
        item = parse_course_listing(course, base_url, position)
        if item is not None:
            courses.append(item)

    if not courses:
        raise ValueError("No valid courses found in classroom listing.")

    return CourseLibrary(group_name=resolve_group_name(props), classroom_url=classroom_url, courses=courses)
