"""Shared test fixtures for all test modules."""

from textwrap import dedent

import pytest

from org_outline.utils.logging import configure_logging


SAMPLE_DOCUMENT = dedent(
    """\
    #+title: Project Notes
    #+filetags: :work:notes:
    #+TODO: TODO NEXT | DONE CANCELLED

    Intro paragraph with *bold* text.

    * TODO [#A] Write report :work:urgent:
    SCHEDULED: <2025-11-15 Sat> DEADLINE: <2025-11-20 Thu 17:00>
    :PROPERTIES:
    :ID: report-1
    :EFFORT: 2:00
    :END:
    :LOGBOOK:
    CLOCK: [2025-11-14 Fri 09:00]--[2025-11-14 Fri 10:30] =>  1:30
    - State "NEXT"       from "TODO"       [2025-11-13 Thu 08:00]
    :END:
    Draft the summary.

    - [ ] Outline
    - [X] Research
    ** NEXT Gather data
    *** DONE Old item
    CLOSED: [2025-11-01 Sat 12:00]
    * Reference
    #+BEGIN_SRC python :results output
    print("hi")
    #+END_SRC
    | a | b |
    |---+---|
    # a comment
    -----
    """
)


@pytest.fixture
def sample_text():
    """A document exercising most constructs the parser models."""
    return SAMPLE_DOCUMENT


@pytest.fixture(autouse=True)
def reset_logging():
    """Run each test with, and restore afterwards, the default logging configuration."""
    configure_logging()
    yield
    configure_logging()
