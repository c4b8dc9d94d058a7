"""Shared snapshot builders for the engine and API tests."""

import pytest

from critcss.engine.types import DomSnapshot, ElementSnapshot, Rect, Viewport


def make_element(
    element_id,
    tag="div",
    classes=(),
    parent=None,
    rect=(0, 0, 100, 100),
    attributes=None,
    display_none=False,
    sibling_index=None,
):
    return ElementSnapshot(
        id=element_id,
        tag=tag,
        classes=frozenset(classes),
        attributes=dict(attributes or {}),
        rect=None if rect is None else Rect(*rect),
        display_none=display_none,
        parent_id=parent,
        sibling_index=sibling_index,
    )


@pytest.fixture
def element():
    """Factory for ``ElementSnapshot`` objects with sensible defaults."""

    return make_element


@pytest.fixture
def viewport():
    return Viewport(width=1440, height=900)


@pytest.fixture
def page():
    """A small landing page: header and hero above the fold, footer below it."""

    return DomSnapshot(
        [
            make_element("html", "html", rect=(0, 0, 1440, 3000), attributes={"lang": "en-US"}),
            make_element("body", "body", parent="html", rect=(0, 0, 1440, 3000)),
            make_element("header", "header", ["header"], "body", (0, 0, 1440, 100), {"id": "top"}),
            make_element("nav", "nav", ["nav"], "header", (0, 0, 1440, 50)),
            make_element("link-home", "a", ["nav-link"], "nav", (0, 0, 100, 20), {"href": "/"}),
            make_element("link-about", "a", ["nav-link", "active"], "nav", (100, 0, 100, 20), {"href": "/about"}),
            make_element("hero", "main", ["hero"], "body", (0, 100, 1440, 600)),
            make_element("title", "h1", ["title"], "hero", (0, 120, 1440, 80)),
            make_element("lead", "p", ["lead"], "hero", (0, 200, 1440, 40)),
            make_element(
                "email",
                "input",
                ["field"],
                "hero",
                (0, 260, 300, 40),
                {"type": "text", "required": ""},
            ),
            make_element("footer", "footer", ["footer"], "body", (0, 2000, 1440, 200)),
            make_element("copyright", "p", ["copyright"], "footer", (0, 2100, 1440, 20)),
        ]
    )
