"""Tests for rulewatch_core.patterns."""

from pathlib import Path

import pytest

from rulewatch_core.errors import PatternError
from rulewatch_core.patterns import PatternResolver, expand_braces, glob_parent, has_wildcard


@pytest.fixture
def resolver(tmp_path):
    return PatternResolver(tmp_path)


def touch(path: Path, content: str = "") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    return path


class TestHasWildcard:
    @pytest.mark.parametrize("pattern", ["src/*.ts", "file?.txt", "[ab].txt", "src/**/x", "src/*.{js,ts}"])
    def test_wildcard_patterns(self, pattern):
        assert has_wildcard(pattern) is True

    @pytest.mark.parametrize("pattern", ["a/b.txt", "/abs/file.json", "name{1}.txt", "./x"])
    def test_literal_patterns(self, pattern):
        assert has_wildcard(pattern) is False


class TestGlobParent:
    def test_simple(self):
        assert glob_parent("src/*.gen.ts") == "src"

    def test_wildcard_in_first_segment(self):
        assert glob_parent("**/*.py") == "."
        assert glob_parent("*.txt") == "."

    def test_stops_at_first_wildcard_segment(self):
        assert glob_parent("src/*/deep/*.ts") == "src"

    def test_braces_count_as_wildcard(self):
        assert glob_parent("src/{a,b}/*.ts") == "src"

    def test_brace_alternatives_spanning_directories(self):
        assert glob_parent("{src,lib/x}/*.ts") == "."
        assert glob_parent("pkg/{a/b,a/c}/*.py") == "pkg/a"

    def test_mixed_absolute_and_relative_alternatives_rejected(self):
        with pytest.raises(PatternError):
            glob_parent("{/abs,rel}/*.txt")

    def test_absolute(self):
        assert glob_parent("/abs/dir/*.txt") == "/abs/dir"
        assert glob_parent("/*.txt") == "/"


class TestExpandBraces:
    def test_no_braces(self):
        assert expand_braces("src/*.ts") == ["src/*.ts"]

    def test_alternatives(self):
        assert expand_braces("src/*.{js,ts}") == ["src/*.js", "src/*.ts"]

    def test_nested(self):
        assert sorted(expand_braces("{a,{b,c}}.txt")) == ["a.txt", "b.txt", "c.txt"]


class TestWatchRootOf:
    def test_literal_is_own_absolute_path(self, resolver, tmp_path):
        assert resolver.watch_root_of("config/app.json") == tmp_path / "config" / "app.json"

    def test_literal_absolute_pattern(self, resolver, tmp_path):
        target = tmp_path / "elsewhere" / "file.txt"
        assert resolver.watch_root_of(str(target)) == target

    def test_literal_missing_file_still_watched_at_own_path(self, resolver, tmp_path):
        assert not (tmp_path / "missing.txt").exists()
        assert resolver.watch_root_of("missing.txt") == tmp_path / "missing.txt"

    def test_glob_root_is_glob_parent(self, resolver, tmp_path):
        assert resolver.watch_root_of("src/*.gen.ts") == tmp_path / "src"
        assert resolver.watch_root_of("**/*.py") == tmp_path

    @pytest.mark.parametrize(
        "pattern",
        ["src/*.ts", "src/**/*.ts", "a/b/c?/d.txt", "x/[ab]/*.md", "docs/{en,fr}/*.md", "*.json"],
    )
    def test_glob_root_is_ancestor_without_wildcards(self, resolver, tmp_path, pattern):
        root = resolver.watch_root_of(pattern)
        assert not has_wildcard(str(root))
        assert root == tmp_path or tmp_path in root.parents

    def test_empty_pattern_rejected(self, resolver):
        with pytest.raises(PatternError):
            resolver.watch_root_of("")


class TestMatcherFor:
    def test_glob_matches_absolute_candidate(self, resolver, tmp_path):
        match = resolver.matcher_for("src/*.gen.ts")
        assert match(tmp_path / "src" / "foo.gen.ts")
        assert not match(tmp_path / "src" / "foo.ts")

    def test_glob_matches_relative_candidate(self, resolver):
        assert resolver.matcher_for("src/*.gen.ts")("src/foo.gen.ts")

    def test_glob_is_case_insensitive(self, resolver, tmp_path):
        assert resolver.matcher_for("src/*.TS")(tmp_path / "SRC" / "Foo.ts")

    def test_glob_matches_dotfiles(self, resolver, tmp_path):
        assert resolver.matcher_for("config/*")(tmp_path / "config" / ".env")

    def test_star_does_not_cross_directories(self, resolver, tmp_path):
        assert not resolver.matcher_for("src/*.ts")(tmp_path / "src" / "sub" / "a.ts")

    def test_globstar_matches_any_depth(self, resolver, tmp_path):
        match = resolver.matcher_for("src/**/*.ts")
        assert match(tmp_path / "src" / "a.ts")
        assert match(tmp_path / "src" / "sub" / "deep" / "a.ts")
        assert not match(tmp_path / "lib" / "a.ts")

    def test_braces(self, resolver, tmp_path):
        match = resolver.matcher_for("src/*.{js,ts}")
        assert match(tmp_path / "src" / "a.js")
        assert match(tmp_path / "src" / "a.ts")
        assert not match(tmp_path / "src" / "a.py")

    def test_character_classes(self, resolver, tmp_path):
        assert resolver.matcher_for("file[0-9].txt")(tmp_path / "file7.txt")
        assert not resolver.matcher_for("file[0-9].txt")(tmp_path / "fileX.txt")
        assert resolver.matcher_for("[!a].txt")(tmp_path / "b.txt")
        assert not resolver.matcher_for("[!a].txt")(tmp_path / "a.txt")

    def test_literal_compares_resolved_paths(self, resolver, tmp_path):
        match = resolver.matcher_for("./config/../app.json")
        assert match(tmp_path / "app.json")
        assert match("app.json")
        assert not match(tmp_path / "other.json")

    def test_unbalanced_class_rejected(self, resolver):
        with pytest.raises(PatternError, match="Unbalanced"):
            resolver.matcher_for("src/[abc.txt")


class TestExpand:
    def test_literal_returns_single_path_even_if_missing(self, resolver, tmp_path):
        assert resolver.expand("missing.txt") == [tmp_path / "missing.txt"]

    def test_literal_existing(self, resolver, tmp_path):
        touch(tmp_path / "a.txt")
        assert resolver.expand("a.txt") == [tmp_path / "a.txt"]

    def test_glob_returns_existing_files_only(self, resolver, tmp_path):
        touch(tmp_path / "src" / "b.txt")
        touch(tmp_path / "src" / "a.txt")
        (tmp_path / "src" / "dir.txt").mkdir()

        assert resolver.expand("src/*.txt") == [tmp_path / "src" / "a.txt", tmp_path / "src" / "b.txt"]

    def test_glob_includes_dotfiles(self, resolver, tmp_path):
        touch(tmp_path / "conf" / ".env")
        assert resolver.expand("conf/*") == [tmp_path / "conf" / ".env"]

    def test_single_star_does_not_descend(self, resolver, tmp_path):
        touch(tmp_path / "top.txt")
        touch(tmp_path / "sub" / "nested.txt")
        assert resolver.expand("*.txt") == [tmp_path / "top.txt"]

    def test_globstar_descends(self, resolver, tmp_path):
        touch(tmp_path / "src" / "a.py")
        touch(tmp_path / "src" / "pkg" / "deep" / "b.py")
        touch(tmp_path / "src" / "pkg" / "c.txt")

        assert resolver.expand("src/**/*.py") == [
            tmp_path / "src" / "a.py",
            tmp_path / "src" / "pkg" / "deep" / "b.py",
        ]

    def test_braces_with_nested_directories(self, resolver, tmp_path):
        touch(tmp_path / "docs" / "en" / "index.md")
        touch(tmp_path / "docs" / "fr" / "index.md")
        touch(tmp_path / "docs" / "de" / "index.md")

        assert resolver.expand("docs/{en,fr}/*.md") == [
            tmp_path / "docs" / "en" / "index.md",
            tmp_path / "docs" / "fr" / "index.md",
        ]

    def test_braces_spanning_directories(self, resolver, tmp_path):
        touch(tmp_path / "src" / "a.ts")
        touch(tmp_path / "lib" / "x" / "b.ts")
        touch(tmp_path / "lib" / "c.ts")
        pattern = "{src,lib/x}/*.ts"

        assert resolver.watch_root_of(pattern) == tmp_path
        assert resolver.expand(pattern) == [tmp_path / "lib" / "x" / "b.ts", tmp_path / "src" / "a.ts"]
        matches = resolver.matcher_for(pattern)
        assert all(matches(path) for path in resolver.expand(pattern))
        assert not matches(tmp_path / "lib" / "c.ts")

    def test_brace_alternative_without_wildcard(self, resolver, tmp_path):
        touch(tmp_path / "a.json")
        assert resolver.expand("{a,b}.json") == [tmp_path / "a.json"]

    def test_missing_root_yields_nothing(self, resolver):
        assert resolver.expand("nope/*.txt") == []


class TestResolveWatch:
    def test_roots_deduplicated_in_order(self, resolver, tmp_path):
        watch = resolver.resolve_watch(["src/*.ts", "src/*.js", "lib/a.txt"])

        assert watch.roots == (tmp_path / "src", tmp_path / "lib" / "a.txt")
        assert len(watch.matchers) == 3

    def test_matches_any_pattern(self, resolver, tmp_path):
        watch = resolver.resolve_watch(["src/*.ts", "lib/a.txt"])

        assert watch.matches(tmp_path / "src" / "x.ts")
        assert watch.matches(tmp_path / "lib" / "a.txt")
        assert not watch.matches(tmp_path / "lib" / "b.txt")
