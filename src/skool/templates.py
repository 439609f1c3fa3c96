from html import escape
from urllib.parse import quote

BASE_STYLE = """
    :root {
        --bg: #f6f3ee;
        --panel: #ffffff;
        --panel-2: #f6f7fb;
        --text: #14161d;
        --muted: #5b6271;
        --accent: #f28c28;
        --link: #1f3d7a;
        --ring: rgba(20,22,29,0.08);
    }
    * { box-sizing: border-box; }
    body {
        margin: 0;
        font-family: "Space Grotesk", "Segoe UI", sans-serif;
        background: var(--bg);
        color: var(--text);
        line-height: 1.7;
    }
    .page { max-width: 980px; margin: 48px auto 80px; padding: 0 22px; }
    .container {
        background: var(--panel);
        padding: 32px;
        border-radius: 18px;
        border: 1px solid var(--ring);
        box-shadow: 0 16px 32px rgba(15, 23, 42, 0.12);
    }
    a { color: var(--link); text-decoration: none; word-break: break-word; }
    a:hover { text-decoration: underline; }
    img { max-width: 100%; border-radius: 10px; height: auto; }
"""


def render_resource_item(title: str, href: str, external: bool = False) -> str:
    label = f"{escape(title)} (External)" if external else escape(title)
    return f'<li><a href="{escape(href, quote=True)}" target="_blank">{label}</a></li>'


def local_resource_href(file_name: str) -> str:
    return f"resources/{quote(file_name)}"


def render_lesson_page(
    title: str,
    group_name: str,
    course_name: str,
    module_title: str,
    content_html: str,
    has_video: bool,
    resource_items: list[str],
) -> str:
    video = '<video controls src="video.mp4"></video>' if has_video else ""
    resources = ""
    if resource_items:
        resources = f"""
            <div class="resources">
                <h3>Resources / Attachments</h3>
                <ul>{"".join(resource_items)}</ul>
            </div>"""

    return f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1">
    <title>{escape(title)}</title>
    <style>{BASE_STYLE}
        .breadcrumb {{ color: var(--muted); margin-bottom: 16px; display: flex; flex-wrap: wrap; gap: 8px; }}
        .breadcrumb a {{ color: var(--accent); font-weight: 600; }}
        h1 {{ margin: 0 0 16px 0; }}
        video {{ width: 100%; border-radius: 14px; margin: 10px 0 26px; display: block; background: #000; }}
        .resources {{ background: var(--panel-2); padding: 18px; border-radius: 14px; margin-top: 28px; }}
        .resources ul {{ list-style: none; padding: 0; margin: 0; display: grid; gap: 8px; }}
        .nav {{ margin-top: 28px; padding-top: 16px; border-top: 1px solid var(--ring); }}
    </style>
</head>
<body>
    <div class="page">
        <div class="breadcrumb">
            <a href="../../../index.html">{escape(group_name)}</a><span>/</span>
            <a href="../../index.html">{escape(course_name)}</a><span>/</span>
            <span>{escape(module_title)}</span><span>/</span>
            <span>{escape(title)}</span>
        </div>
        <div class="container">
            <h1>{escape(title)}</h1>
            {video}
            <div class="content">
                {content_html}
            </div>{resources}
            <div class="nav">
                <a href="../../index.html">Back to Course Index</a>
            </div>
        </div>
    </div>
</body>
</html>
"""


def render_course_index(course_name: str, group_name: str, cover_path: str | None, modules: list) -> str:
    """`modules` holds objects with `title` and `lessons` (each with `title` and `path`)."""
    lessons_total = sum(len(module.lessons) for module in modules)
    cover = ""
    if cover_path:
        cover = f'<img class="cover" src="{escape(cover_path, quote=True)}" alt="{escape(course_name)} cover">'

    sections = []
    for module in modules:
        items = "".join(
            f'<li><a href="{escape(lesson.path, quote=True)}">{escape(lesson.title)}</a></li>'
            for lesson in module.lessons
        )
        sections.append(f'<section class="module"><h2>{escape(module.title)}</h2><ul>{items}</ul></section>')

    return f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1">
    <title>{escape(course_name)}</title>
    <style>{BASE_STYLE}
        .cover {{ width: 100%; max-height: 320px; object-fit: cover; margin-bottom: 20px; }}
        .stats {{ margin-bottom: 20px; padding: 15px; background: var(--panel-2); border-radius: 8px; color: var(--muted); }}
        h2 {{ margin-top: 30px; font-size: 1.4em; border-left: 4px solid var(--accent); padding-left: 15px; }}
        ul {{ list-style: none; padding: 0; }}
        li {{ margin-bottom: 10px; }}
    </style>
</head>
<body>
    <div class="page">
        <div class="container">
            {cover}
            <p class="group">{escape(group_name)}</p>
            <h1>{escape(course_name)}</h1>
            <div class="stats">📊 <strong>{lessons_total} lessons</strong> across <strong>{len(modules)} modules</strong></div>
            {"".join(sections)}
        </div>
    </div>
</body>
</html>
"""


def render_group_index(group_name: str, courses: list, updated_label: str) -> str:
    """`courses` holds objects with `dir_name`, `course_name`, `cover_src`, `modules_count`, `lessons_count`, `updated_at`."""
    cards = []
    for course in courses:
        if course.cover_src:
            image = f'<img src="{escape(course.cover_src, quote=True)}" alt="{escape(course.course_name)} cover">'
        else:
            image = '<div class="course-fallback">No course image</div>'
        updated = escape(course.updated_at[:10]) if course.updated_at else "Unknown"
        cards.append(
            f"""
            <a class="course-card" href="{escape(course.dir_name, quote=True)}/index.html">
                <div class="course-image">{image}</div>
                <div class="course-body">
                    <h2>{escape(course.course_name)}</h2>
                    <p class="course-meta">Updated {updated}</p>
                    <p><strong>{course.modules_count}</strong> modules · <strong>{course.lessons_count}</strong> lessons</p>
                </div>
            </a>"""
        )

    lessons_total = sum(course.lessons_count for course in courses)
    return f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1">
    <title>{escape(group_name)} - Courses</title>
    <style>{BASE_STYLE}
        .courses {{ display: grid; grid-template-columns: repeat(auto-fill, minmax(260px, 1fr)); gap: 20px; margin-top: 24px; }}
        .course-card {{ background: var(--panel); border-radius: 16px; overflow: hidden; border: 1px solid var(--ring); color: var(--text); }}
        .course-image img {{ width: 100%; height: 150px; object-fit: cover; border-radius: 0; }}
        .course-fallback {{ height: 150px; display: flex; align-items: center; justify-content: center; color: var(--muted); background: var(--panel-2); }}
        .course-body {{ padding: 16px; }}
        .course-meta {{ color: var(--muted); font-size: 0.9em; }}
    </style>
</head>
<body>
    <div class="page">
        <h1>{escape(group_name)}</h1>
        <p>All downloaded courses for this community.</p>
        <p><strong>{len(courses)}</strong> courses · <strong>{lessons_total}</strong> lessons · Updated {escape(updated_label)}</p>
        <div class="courses">{"".join(cards)}
        </div>
    </div>
</body>
</html>
"""
