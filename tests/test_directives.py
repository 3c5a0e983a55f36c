"""
tests/test_directives.py -- Unit tests for core/directives.py.

Covers:
  - No directive -> empty list
  - Single-line and multi-line comment blocks
  - Several occurrences concatenate in file order
  - Malformed bodies are skipped, later occurrences still parsed
  - Bare identifier lists
  - Custom directive names
"""

from __future__ import annotations

import logging

from core.directives import parse_directives


class TestParseDirectives:
    def test_no_directive_returns_empty(self) -> None:
        assert parse_directives("var x = 1;\n// nothing to see\n") == []

    def test_empty_source(self) -> None:
        assert parse_directives("") == []

    def test_single_line(self) -> None:
        assert parse_directives('/** @require ["common.js"] */') == ["common.js"]

    def test_multiline_block_with_star_markers(self) -> None:
        source = '/**\n * @require [\n *   "vendor/jquery.js",\n *   "common.js"\n * ]\n */\nvar a;'
        assert parse_directives(source) == ["vendor/jquery.js", "common.js"]

    def test_line_comments(self) -> None:
        source = '// @require [\n//   "a.js",\n//   "b.js"\n// ]\n'
        assert parse_directives(source) == ["a.js", "b.js"]

    def test_single_quotes(self) -> None:
        assert parse_directives("/* @require ['a.js', 'b.js'] */") == ["a.js", "b.js"]

    def test_occurrences_concatenate_in_file_order(self) -> None:
        source = '/* @require ["z.js"] */\ncode();\n/* @require ["a.js", "m.js"] */'
        assert parse_directives(source) == ["z.js", "a.js", "m.js"]

    def test_empty_array(self) -> None:
        assert parse_directives("/* @require [] */") == []

    def test_bare_identifiers(self) -> None:
        assert parse_directives("/* @require [common.js, lib/util.js] */") == ["common.js", "lib/util.js"]

    def test_malformed_body_skipped_with_warning(self, caplog) -> None:
        source = '/* @require ["a.js", 3] */\n/* @require ["b.js"] */'
        with caplog.at_level(logging.WARNING, logger="combiner.directives"):
            assert parse_directives(source) == ["b.js"]
        assert "malformed" in caplog.text

    def test_unparseable_body_skipped(self) -> None:
        assert parse_directives('/* @require [a.js; (oops] */\n/* @require ["ok.js"] */') == ["ok.js"]

    def test_require_without_array_ignored(self) -> None:
        assert parse_directives("// @require common.js") == []

    def test_similar_word_not_matched(self) -> None:
        assert parse_directives('/* @requirements ["a.js"] */') == []

    def test_custom_directive_name(self) -> None:
        source = '/* @require ["a.js"] */ /* @import ["b.css"] */'
        assert parse_directives(source, directive="import") == ["b.css"]

    def test_non_string_source(self) -> None:
        assert parse_directives(None) == []  # type: ignore[arg-type]
