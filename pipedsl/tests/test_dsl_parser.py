"""
Tests for the pipeline file parser.
"""

import logging

import pytest

from pipedsl.dsl_ast import BlockRef, ShellItem
from pipedsl.dsl_parser import ConfigError, LoadContext, ParseError, load_conf, parse_text
from pipedsl.pipeline import Pipeline


def parse(source: str, parallel: bool = False) -> Pipeline:
    pipeline = Pipeline()
    pipeline.loads(source, parallel=parallel)
    return pipeline


def commands(block) -> list:
    return [item.command for item in block.items]


class FakeFileSystem:
    """FileSystem that knows only the paths it was given."""

    def __init__(self, *paths):
        self.paths = set(paths)

    def exists(self, path):
        return path in self.paths

    def is_executable(self, path):
        return False

    def is_text_file(self, path):
        return True

    def dir_name(self, path):
        return "conf"


class TestProcedures:
    """Test procedure declarations."""

    def test_sequential_procedure(self):
        pipeline = parse("""
build() {
    make all
    make install
}
""")
        proc = pipeline.procedures["build"]
        assert proc.pos == "<string>(2)"
        block = pipeline.blocks[proc.block_index]
        assert not block.parallel
        assert commands(block) == ["make all", "make install"]
        assert block.items[0].head == "make"
        assert block.items[0].args == ["all"]

    def test_parallel_procedure(self):
        pipeline = parse("""
test() {{
    pytest unit
    pytest integration
}}
""")
        block = pipeline.get_block("test")
        assert block.parallel
        assert len(block.items) == 2

    def test_bracket_on_following_line(self):
        pipeline = parse("""
deploy()

# upload the artifacts
{
    scp build.tar host:
}
""")
        assert commands(pipeline.get_block("deploy")) == ["scp build.tar host:"]

    def test_empty_procedure(self):
        pipeline = parse("noop() {\n}\n")
        assert pipeline.get_block("noop").is_empty()

    def test_comments_and_blank_lines_in_block(self):
        pipeline = parse("""
build() {
    # configure first

    ./configure
    make
}
""")
        assert commands(pipeline.get_block("build")) == ["./configure", "make"]

    def test_declaration_order_kept(self):
        pipeline = parse("b() {\n x\n}\na() {\n y\n}\n")
        assert list(pipeline.procedures) == ["b", "a"]

    def test_duplicate_procedure(self):
        source = "foo() {\n  a\n}\nfoo() {\n  b\n}\n"
        with pytest.raises(ParseError) as exc_info:
            parse(source)
        message = str(exc_info.value)
        assert "Duplicated procedure 'foo' at <string>(4)" in message
        assert "Previous definition of 'foo' was in <string>(1)" in message
        assert exc_info.value.pos == "<string>(4)"

    def test_missing_left_bracket(self):
        with pytest.raises(ParseError, match="Only '{' or '{{' was expected"):
            parse("build()\nmake\n")

    def test_missing_body_at_eof(self):
        with pytest.raises(ParseError, match="Missing body"):
            parse("build()\n")

    def test_missing_left_bracket_at_eof(self):
        with pytest.raises(ParseError, match="Missing left bracket"):
            parse("build()\n\n# nothing\n")

    def test_attribute_between_header_and_bracket(self):
        with pytest.raises(ParseError, match="Unexpected attribute line"):
            parse("build()\n#@ owner: ci\n{\n make\n}\n")


class TestBlocks:
    """Test nested blocks and bracket matching."""

    def test_nested_blocks(self):
        pipeline = parse("""
all() {
    {{
        compile a
        compile b
    }}
    link
}
""")
        # The procedure's block is reserved before its children
        assert pipeline.procedures["all"].block_index == 1
        outer = pipeline.blocks[1]
        assert outer.items[0] == BlockRef(2)
        assert isinstance(outer.items[1], ShellItem)
        inner = pipeline.blocks[2]
        assert inner.parallel
        assert commands(inner) == ["compile a", "compile b"]

    def test_deep_nesting(self):
        pipeline = parse("p() {\n{{\n{\nx\n}\n}}\n}\n")
        assert len(pipeline.blocks) == 4
        assert pipeline.blocks[1].items == [BlockRef(2)]
        assert pipeline.blocks[2].items == [BlockRef(3)]
        assert commands(pipeline.blocks[3]) == ["x"]

    def test_bracket_mismatch(self):
        with pytest.raises(ParseError, match="Right bracket '}}' was expected here") as exc_info:
            parse("p() {{\n    a\n}\n")
        assert exc_info.value.pos == "<string>(3)"

    def test_bracket_mismatch_sequential(self):
        with pytest.raises(ParseError, match="Right bracket '}' was expected here"):
            parse("p() {\n    a\n}}\n")

    def test_missing_right_bracket(self):
        with pytest.raises(ParseError, match="Missing right bracket '}'"):
            parse("p() {\n    a\n")

    def test_missing_right_bracket_nested(self):
        with pytest.raises(ParseError, match="Missing right bracket"):
            parse("p() {\n{{\n a\n}}\n")

    def test_top_level_right_bracket(self):
        with pytest.raises(ParseError, match="Unexpected right bracket '}'"):
            parse("echo a\n}\n")

    def test_top_level_block(self):
        pipeline = parse("{{\n    a\n    b\n}}\n")
        assert pipeline.blocks[0].items == [BlockRef(1)]
        assert pipeline.blocks[1].parallel


class TestDefaultBlock:
    """Test shell lines outside procedures."""

    def test_default_commands(self):
        pipeline = parse("echo one\necho two\n")
        assert commands(pipeline.get_default_block()) == ["echo one", "echo two"]
        assert pipeline.has_any_default_command()

    def test_default_block_mode(self):
        assert parse("echo a\n", parallel=True).blocks[0].parallel
        assert not parse("echo a\n").blocks[0].parallel


class TestCommandLines:
    """Test continuation and multi-command lines."""

    def test_backslash_continuation(self):
        pipeline = parse("echo a \\\n    more\n")
        item = pipeline.blocks[0].items[0]
        assert item.command == "echo a more"
        assert item.args == ["a", "more"]

    def test_quote_continuation(self):
        pipeline = parse('echo "first\n  second"\n')
        item = pipeline.blocks[0].items[0]
        assert item.command == 'echo "first\nsecond"'
        assert len(pipeline.blocks[0].items) == 1

    def test_continuation_position(self):
        pipeline = parse("\necho a \\\nb\n")
        assert pipeline.blocks[0].items[0].pos == "<string>(2)"

    def test_eof_inside_quote(self):
        with pytest.raises(ParseError, match="Unexpected EOF"):
            parse('echo "abc\n')

    def test_malformed_command(self):
        with pytest.raises(ParseError) as exc_info:
            parse('build() {\n    echo "\\q"\n}\n')
        message = str(exc_info.value)
        assert "Error when parsing shell command at <string>(2)" in message
        assert "^ Invalid escape sequence" in message

    def test_multi_command_in_sequential_block(self):
        pipeline = parse("p() {\n    a 1; b 2\n}\n")
        block = pipeline.get_block("p")
        assert commands(block) == ["a 1", "b 2"]
        assert len(pipeline.blocks) == 2

    def test_multi_command_in_parallel_block(self):
        pipeline = parse("p() {{\n    a 1; b 2\n    c\n}}\n")
        block = pipeline.get_block("p")
        assert len(block.items) == 2
        assert block.items[0] == BlockRef(2)
        assert commands(pipeline.blocks[2]) == ["a 1", "b 2"]
        assert not pipeline.blocks[2].parallel
        assert block.items[1].command == "c"

    def test_multi_command_in_parallel_default_block(self):
        pipeline = parse("a && b\n", parallel=True)
        assert pipeline.blocks[0].items == [BlockRef(1)]
        assert commands(pipeline.blocks[1]) == ["a", "b"]

    def test_brace_group_is_one_item(self):
        pipeline = parse("{ echo hi; }\n")
        assert commands(pipeline.blocks[0]) == ["{ echo hi; }"]
        assert len(pipeline.blocks) == 1

    def test_trailing_comment_kept_with_command(self):
        pipeline = parse("build() {\n\tmake; # rebuild\n}\n")
        assert commands(pipeline.get_block("build")) == ["make; # rebuild"]

    def test_command_substitution_is_one_item(self):
        pipeline = parse("p() {{\n    echo $(date; hostname)\n}}\n")
        assert commands(pipeline.get_block("p")) == ["echo $(date; hostname)"]


class TestVariablesAndIncludes:
    """Test configuration variables, include and '.conf' files."""

    def test_variables(self):
        pipeline = parse("CC = gcc\nCC = clang\nJOBS=4\n")
        assert pipeline.variables == {"CC": "clang", "JOBS": "4"}

    def test_include(self, tmp_path):
        (tmp_path / "common.conf").write_text("# shared\n\nJOBS = 8\n")
        main = tmp_path / "main.pipe"
        main.write_text("include common.conf\nbuild() {\n    make\n}\n")
        pipeline = Pipeline()
        pipeline.load(str(main))
        assert pipeline.variables == {"JOBS": "8"}
        assert pipeline.has_procedure("build")

    def test_missing_include(self, tmp_path):
        main = tmp_path / "main.pipe"
        main.write_text("include nowhere.conf\n")
        with pytest.raises(ConfigError, match="Cannot open module 'nowhere.conf'"):
            Pipeline().load(str(main))

    def test_missing_optional_include(self, tmp_path):
        main = tmp_path / "main.pipe"
        main.write_text("-include nowhere.conf\necho ok\n")
        pipeline = Pipeline()
        pipeline.load(str(main))
        assert commands(pipeline.blocks[0]) == ["echo ok"]

    def test_include_with_command(self, tmp_path):
        (tmp_path / "bad.conf").write_text("JOBS = 8\nmake all\n")
        main = tmp_path / "main.pipe"
        main.write_text("include bad.conf\n")
        with pytest.raises(ConfigError, match="Invalid syntax of configure file") as exc_info:
            Pipeline().load(str(main))
        assert exc_info.value.pos.endswith("bad.conf(2)")

    def test_conf_sibling_overrides(self, tmp_path):
        main = tmp_path / "main.pipe"
        main.write_text("MODE = debug\nOTHER = 1\necho $MODE\n")
        (tmp_path / "main.pipe.conf").write_text("MODE = release\n")
        pipeline = Pipeline()
        pipeline.load(str(main))
        assert pipeline.variables == {"MODE": "release", "OTHER": "1"}

    def test_missing_main_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            Pipeline().load(str(tmp_path / "missing.pipe"))

    def test_injected_filesystem(self):
        pipeline = Pipeline(filesystem=FakeFileSystem())
        pipeline.loads("-include extra.conf\necho a\n")
        with pytest.raises(ConfigError):
            Pipeline(filesystem=FakeFileSystem()).loads("include extra.conf\n")

    def test_load_conf(self, tmp_path):
        path = tmp_path / "vars.conf"
        path.write_text("A = 1\n  # comment\nB = two words\n")
        variables = {"A": "0"}
        load_conf(str(path), variables)
        assert variables == {"A": "1", "B": "two words"}

    def test_load_conf_missing(self, tmp_path):
        with pytest.raises(ConfigError, match="Cannot open configure file"):
            load_conf(str(tmp_path / "missing.conf"), {})

    def test_shared_context(self):
        ctx = LoadContext(variables={"X": "1"})
        pipeline = Pipeline()
        parse_text(pipeline, "Y = 2\n", ctx=ctx)
        assert ctx.variables == {"X": "1", "Y": "2"}


class TestAttributeLines:
    """Test '#@' attribute comments."""

    def test_attributes_attach_to_procedure(self):
        pipeline = parse("""
#@ owner: ci, timeout: 30m
#@ summary: "Build, then package"
build() {
    make
}
""")
        assert pipeline.procedures["build"].attributes == [
            ("owner", "ci"), ("timeout", "30m"), ("summary", "Build, then package"),
        ]

    def test_attributes_survive_blank_lines_and_comments(self):
        pipeline = parse("#@ owner: ci\n\n# build it\nbuild() {\n make\n}\n")
        assert pipeline.procedures["build"].attributes == [("owner", "ci")]

    def test_attributes_not_followed_by_procedure(self):
        pipeline = parse("#@ owner: ci\necho x\nbuild() {\n make\n}\n")
        assert pipeline.procedures["build"].attributes == []

    def test_malformed_attribute(self, caplog):
        with caplog.at_level(logging.WARNING):
            pipeline = parse("#@ bogus\nbuild() {\n make\n}\n")
        assert pipeline.procedures["build"].attributes == []
        assert "Invalid format of attribute at <string>(1)" in caplog.text
