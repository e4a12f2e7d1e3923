"""Tests for the brace-language complexity scanners."""

from __future__ import annotations

import textwrap

import pytest

from repohealth.analyzers import ScanAnomaly, get_scanner


def _scan(language: str, source: str) -> dict[str, tuple[int, int]]:
    scanner = get_scanner(language)
    assert scanner is not None
    return {item.name: (item.line, item.complexity) for item in scanner.scan(textwrap.dedent(source))}


def test_java_method_with_three_ifs_and_short_circuit() -> None:
    scores = _scan(
        "java",
        """
        public class Validator {
            public int check(int a, int b) {
                if (a > 0 && b > 0) {
                    return 1;
                }
                if (a < 0) {
                    return 2;
                }
                if (b < 0) {
                    return 3;
                }
                return 0;
            }
        }
        """,
    )
    assert scores == {"check": (3, 5)}


def test_java_switch_and_catch_count_but_default_and_else_do_not() -> None:
    scores = _scan(
        "java",
        """
        class Router {
            String route(int code) throws Exception {
                try {
                    switch (code) {
                        case 1: return "one";
                        case 2: return "two";
                        default: return "other";
                    }
                } catch (IllegalStateException e) {
                    return "bad";
                } finally {
                    cleanup();
                }
            }

            void cleanup() {
                if (ready) {
                    reset();
                } else {
                    stop();
                }
            }
        }
        """,
    )
    assert scores["route"] == (3, 4)
    assert scores["cleanup"] == (17, 2)


def test_java_anonymous_class_body_is_not_a_function() -> None:
    scores = _scan(
        "java",
        """
        class Pool {
            Runnable task() {
                return new Runnable() {
                    public void run() {
                        if (busy) { work(); }
                    }
                };
            }
        }
        """,
    )
    assert scores == {"task": (3, 1), "run": (5, 2)}


def test_javascript_arrow_functions_are_scored_separately() -> None:
    scores = _scan(
        "javascript",
        """
        function outer(items) {
          if (!items) {
            return [];
          }
          const keep = (item) => {
            return item.active && item.visible || item.pinned;
          };
          return items.filter(keep);
        }
        """,
    )
    assert scores["outer"] == (2, 2)
    assert scores["keep"] == (6, 3)


def test_javascript_strings_templates_and_comments_are_blanked() -> None:
    scores = _scan(
        "javascript",
        """
        function label(user) {
          // if the user is missing, while we wait
          const text = "if && ||";
          const other = 'for while';
          const tpl = `case ${"x"} catch`;
          /* if (a) { b } */
          return user ?? text;
        }
        """,
    )
    assert scores == {"label": (2, 2)}


def test_typescript_class_methods_are_found() -> None:
    scores = _scan(
        "typescript",
        """
        export class Store {
          private cache: Map<string, number> = new Map();

          public get(key: string): number | undefined {
            if (this.cache.has(key)) {
              return this.cache.get(key);
            }
            return undefined;
          }
        }
        """,
    )
    assert scores["get"] == (5, 2)


def test_go_functions_and_methods() -> None:
    scores = _scan(
        "go",
        """
        package main

        func (s *Server) Handle(req Request) error {
        	for _, item := range req.Items {
        		if item == nil || item.Empty() {
        			continue
        		}
        	}
        	switch req.Kind {
        	case "a":
        		return nil
        	default:
        		return errUnknown
        	}
        }

        func main() {
        	run := func() {
        		if ready {
        			start()
        		}
        	}
        	run()
        }
        """,
    )
    assert scores["Handle"] == (4, 5)
    assert scores["main"] == (18, 1)
    assert scores["<anonymous>"] == (19, 2)


def test_csharp_foreach_and_null_coalescing() -> None:
    scores = _scan(
        "csharp",
        """
        public class Totals
        {
            public int Sum(List<int> values)
            {
                var total = 0;
                foreach (var value in values)
                {
                    total += value;
                }
                var name = @"if ""quoted"" while";
                return total > 0 ? total : fallback ?? 0;
            }
        }
        """,
    )
    assert scores == {"Sum": (4, 3)}


def test_rust_match_arms_and_closures() -> None:
    scores = _scan(
        "rust",
        """
        fn classify(value: Option<u32>) -> &'static str {
            let check = || true;
            match value {
                Some(0) => "zero",
                Some(n) if n > 10 => "big",
                Some(_) => "small",
                None => "none",
            }
        }
        """,
    )
    # four arms plus the guard ``if``; the empty closure ``||`` is not a boolean operator
    assert scores == {"classify": (2, 6)}


def test_unbalanced_braces_are_an_anomaly() -> None:
    scanner = get_scanner("java")
    assert scanner is not None
    with pytest.raises(ScanAnomaly):
        scanner.scan("class Broken {\n  void run() {\n    if (x) {\n  }\n")


def test_unterminated_block_comment_is_an_anomaly() -> None:
    scanner = get_scanner("javascript")
    assert scanner is not None
    with pytest.raises(ScanAnomaly):
        scanner.scan("function a() {\n  /* never closed\n}\n")


def test_aliases_resolve_to_scanners() -> None:
    assert get_scanner("js").language == "javascript"  # type: ignore[union-attr]
    assert get_scanner("ts").language == "typescript"  # type: ignore[union-attr]
    assert get_scanner("cobol") is None
