"""
Unit tests for the annotation parser.

Covers field extraction, argument and option parsing, dependency path
handling and the header renderer used by ``scriptflow new``.
"""

from pathlib import Path

import pytest

from scriptflow.annotations import AnnotationParser, normalize_dependency
from scriptflow.contracts.models import (
    BooleanOpt,
    Origin,
    ScriptArg,
    ScriptRequirement,
    StdinMode,
    StringOpt,
    WorktreeOpt,
)
from scriptflow.errors import AnnotationError

SCRIPT = """#!/usr/bin/env bash

# @vercel.name Link Local Next.js
# @vercel.description Install the local Next.js package
# @vercel.after ./build_next.sh prepare.sh
# @vercel.arg VERCEL_NEXT_DIRECTORY The directory for the vercel/next.js repo
# @vercel.opt { "name": "VERCEL_NEXT_WORKTREE", "description": "Select worktree", "type": "worktree", "baseDirArg": "VERCEL_NEXT_DIRECTORY", "default": null, "optional": true }
# @vercel.opt {"name": "PROD", "description": "Production build", "type": "boolean", "default": false}
# @vercel.stdin inherit

set -e
echo "@vercel.name is only read from comments at the top" > /dev/null
"""


class TestAnnotationParser:
    """Test parsing of script headers."""

    @pytest.fixture
    def parser(self):
        return AnnotationParser()

    @pytest.fixture
    def path(self, tmp_path):
        return tmp_path / "link_local_next.sh"

    def test_parse_full_header(self, parser, path):
        script = parser.parse(SCRIPT, path, Origin.bundled)

        assert script.name == "Link Local Next.js"
        assert script.description == "Install the local Next.js package"
        assert script.after == ["build_next.sh", "prepare.sh"]
        assert script.args == [
            ScriptArg(
                name="VERCEL_NEXT_DIRECTORY",
                description="The directory for the vercel/next.js repo",
            )
        ]
        assert script.stdin == StdinMode.inherit
        assert script.inherits_stdin
        assert script.identity.directory == path.parent
        assert script.identity.file_name == "link_local_next.sh"

    def test_parse_options_by_type(self, parser, path):
        script = parser.parse(SCRIPT, path, Origin.bundled)

        worktree, boolean = script.opts
        assert isinstance(worktree, WorktreeOpt)
        assert worktree.base_dir_arg == "VERCEL_NEXT_DIRECTORY"
        assert worktree.optional is True
        assert worktree.default is None
        assert isinstance(boolean, BooleanOpt)
        assert boolean.default is False
        assert boolean.optional is False

    def test_first_name_annotation_wins(self, parser, path):
        content = "# @vercel.name First\n# @vercel.name Second\n"
        assert parser.parse(content, path, Origin.external).name == "First"

    def test_missing_name_defaults_to_file_name(self, parser, path):
        script = parser.parse("# just a shell script\n", path, Origin.external)

        assert script.name == "link_local_next.sh"
        assert script.description is None
        assert script.args == []
        assert script.opts == []
        assert script.after == []
        assert script.stdin is None

    def test_custom_namespace(self, path):
        parser = AnnotationParser("acme")
        content = "# @acme.name Acme\n# @vercel.name Other\n# @acme.arg DIR A dir\n"

        script = parser.parse(content, path, Origin.external)

        assert script.name == "Acme"
        assert [a.name for a in script.args] == ["DIR"]

    def test_string_option_with_pattern(self, parser, path):
        content = (
            '# @vercel.opt { "name": "IP", "description": "Proxy", "type": "string", '
            '"default": "127.0.0.1", "pattern": "\\\\d+\\\\.\\\\d+", "pattern_help": "Use an IP" }\n'
        )
        (opt,) = parser.parse(content, path, Origin.bundled).opts

        assert isinstance(opt, StringOpt)
        assert opt.pattern == r"\d+\.\d+"
        assert opt.pattern_help == "Use an IP"
        assert opt.default == "127.0.0.1"

    def test_requires_adds_dependency(self, parser, path):
        content = "# @vercel.requires ./deploy_project.sh ORIGIN TOKEN\n# @vercel.after ./build.sh\n"
        script = parser.parse(content, path, Origin.bundled)

        assert script.requires == [
            ScriptRequirement(script="deploy_project.sh", variables=["ORIGIN", "TOKEN"])
        ]
        assert script.dependency_names == ["build.sh", "deploy_project.sh"]

    @pytest.mark.parametrize(
        "content",
        [
            '# @vercel.opt {"name": "X", "description": "d", "type": "boolean"\n',
            '# @vercel.opt {"name": "X", "description": "d", "type": "number"}\n',
            '# @vercel.opt {"name": "X-Y", "description": "d", "type": "boolean"}\n',
            '# @vercel.opt {"name": "X", "description": "d", "type": "string", "pattern": "("}\n',
            '# @vercel.opt {"name": "X", "description": "d", "type": "worktree"}\n',
            '# @vercel.opt {"name": "W", "description": "d", "type": "worktree", "baseDirArg": "NOPE"}\n',
            "# @vercel.after ../outside.sh\n",
            "# @vercel.requires ../outside.sh VAR\n",
            "# @vercel.stdin pipe\n",
        ],
    )
    def test_malformed_headers_raise(self, parser, path, content):
        with pytest.raises(AnnotationError) as exc_info:
            parser.parse(content, path, Origin.external)
        assert exc_info.value.path == path

    def test_duplicate_option_names_rejected(self, parser, path):
        content = (
            '# @vercel.opt {"name": "X", "description": "a", "type": "boolean"}\n'
            '# @vercel.opt {"name": "X", "description": "b", "type": "string"}\n'
        )
        with pytest.raises(AnnotationError):
            parser.parse(content, path, Origin.external)

    def test_after_deduplicates(self, parser, path):
        content = "# @vercel.after ./a.sh a.sh b.sh\n"
        assert parser.parse(content, path, Origin.external).after == ["a.sh", "b.sh"]


def test_normalize_dependency():
    assert normalize_dependency("./build.sh") == "build.sh"
    assert normalize_dependency("build.sh") == "build.sh"
    assert normalize_dependency("/abs/build.sh") == "/abs/build.sh"


def test_render_header_parses_back(tmp_path):
    parser = AnnotationParser()
    opts = [
        BooleanOpt(name="PROD", description="Production", default=True),
        WorktreeOpt(name="TREE", description="Tree", optional=True, base_dir_arg="DIR"),
    ]
    header = parser.render_header(
        "My Script",
        description="Does things",
        after=["build.sh", "/elsewhere/prepare.sh"],
        requires=[ScriptRequirement(script="deploy.sh", variables=["ORIGIN"])],
        args=[ScriptArg(name="DIR", description="Repo dir")],
        opts=opts,
        inherit_stdin=True,
    )

    script = parser.parse(header, tmp_path / "my_script.sh", Origin.external)

    assert "# @vercel.after ./build.sh /elsewhere/prepare.sh" in header
    assert script.name == "My Script"
    assert script.description == "Does things"
    assert script.after == ["build.sh", "/elsewhere/prepare.sh"]
    assert script.requires[0].variables == ["ORIGIN"]
    assert script.opts == opts
    assert script.inherits_stdin
    assert Path(script.path).name == "my_script.sh"
