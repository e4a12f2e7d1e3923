"""Tests for the indentation-aware Python complexity scanner."""

from __future__ import annotations

import textwrap

import pytest

from repohealth.analyzers import PythonScanner, ScanAnomaly


def _scan(source: str) -> dict[str, tuple[int, int]]:
    results = PythonScanner().scan(textwrap.dedent(source))
    return {item.name: (item.line, item.complexity) for item in results}


def test_three_ifs_and_one_boolean_operator_score_five() -> None:
    scores = _scan(
        """
        def check(a, b):
            if a and b:
                return 1
            if a:
                return 2
            if b:
                return 3
            return 0
        """
    )
    assert scores["check"] == (2, 5)


def test_straight_line_function_has_baseline_complexity() -> None:
    scores = _scan(
        """
        def add(a, b):
            total = a + b
            return total
        """
    )
    assert scores == {"add": (2, 1)}


def test_elif_except_loops_and_comprehensions_count() -> None:
    scores = _scan(
        """
        def process(items):
            try:
                for item in items:
                    while item:
                        item -= 1
            except ValueError:
                pass
            except KeyError:
                pass
            if not items:
                return []
            elif len(items) > 3 or items[0]:
                return [x for x in items if x]
            else:
                return items
        """
    )
    # for, while, 2x except, if, elif, or, comprehension for + if
    assert scores["process"] == (2, 10)


def test_conditional_expressions_are_not_decision_points() -> None:
    scores = _scan(
        """
        def pick(a, b):
            return 1 if a else 2

        def guarded(a, b):
            if a: value = 1 if b else 2
            items = [x if x else b for x in a if x]
            return value, items
        """
    )
    assert scores["pick"] == (2, 1)
    # statement if, comprehension for + filter if
    assert scores["guarded"] == (5, 4)


def test_nested_functions_are_scored_independently() -> None:
    scores = _scan(
        """
        def outer(flag):
            if flag:
                pass

            def inner(value):
                if value or flag:
                    return 1
                return 0

            while flag:
                flag = inner(flag)
            return flag
        """
    )
    assert scores["outer"] == (2, 3)
    assert scores["inner"] == (6, 3)


def test_keywords_in_strings_and_comments_are_ignored() -> None:
    scores = _scan(
        '''
        def describe():
            """if this or that while for"""
            label = "if and or"  # if for while
            return label
        '''
    )
    assert scores["describe"] == (2, 1)


def test_methods_and_async_functions_are_found() -> None:
    scores = _scan(
        """
        class Service:
            def start(self):
                if self.ready:
                    return True
                return False

            async def fetch(self, url):
                for attempt in range(3):
                    pass
        """
    )
    assert scores == {"start": (3, 2), "fetch": (8, 2)}


def test_match_case_arms_count() -> None:
    scores = _scan(
        """
        def route(command):
            match command:
                case "start":
                    return 1
                case "stop":
                    return 2
                case _:
                    return 0
        """
    )
    assert scores["route"] == (2, 4)


def test_multiline_conditions_are_joined() -> None:
    scores = _scan(
        """
        def ready(a, b, c):
            if (a and
                    b and
                    c):
                return True
            return False
        """
    )
    assert scores["ready"] == (2, 4)


def test_empty_source_has_no_functions() -> None:
    assert PythonScanner().scan("") == []
    assert PythonScanner().scan("\n\n# just a comment\n") == []


def test_unterminated_triple_quote_is_an_anomaly() -> None:
    with pytest.raises(ScanAnomaly):
        PythonScanner().scan('def broken():\n    """never closed\n    return 1\n')


def test_unbalanced_brackets_are_an_anomaly() -> None:
    with pytest.raises(ScanAnomaly):
        PythonScanner().scan("def broken():\n    return (1, 2\n")


def test_file_complexity_counts_every_decision_point() -> None:
    source = "if a:\n    pass\nfor x in y:\n    pass\n"
    assert PythonScanner().file_complexity(source) == 3
