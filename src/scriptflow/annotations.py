"""
Script Annotation Parser

Reads the ``@<namespace>.<field>`` comment lines that describe a script and
turns them into a validated ``Script`` record. Anything else in the file is
ignored, so annotations may sit anywhere in the shell body.
"""

import json
import logging
import re
from pathlib import Path
from typing import List, Optional, Sequence

from pydantic import ValidationError

from .contracts.models import (
    Origin,
    Script,
    ScriptArg,
    ScriptIdentity,
    ScriptOpt,
    ScriptRequirement,
    script_opt_adapter,
)
from .errors import AnnotationError

logger = logging.getLogger(__name__)

DEFAULT_NAMESPACE = "vercel"


def normalize_dependency(token: str) -> str:
    """Strip a leading ``./`` from a dependency reference."""
    return token[2:] if token.startswith("./") else token


class AnnotationParser:
    """Stateless reader for one annotation namespace."""

    def __init__(self, namespace: str = DEFAULT_NAMESPACE):
        self.namespace = namespace
        self._prefix = rf"@{re.escape(namespace)}\."
        self._arg_re = re.compile(
            self._prefix + r"arg[ \t]+(?P<name>[A-Za-z0-9_]+)[ \t]+(?P<description>.+)$",
            re.MULTILINE,
        )
        self._opt_re = re.compile(self._prefix + r"opt[ \t]+(?P<json>.+)$", re.MULTILINE)
        self._requires_re = re.compile(
            self._prefix + r"requires[ \t]+(?P<tokens>.+)$", re.MULTILINE
        )

    def read_field(self, content: str, field: str) -> Optional[str]:
        """Return the value of the first ``@ns.<field> value`` line, if any."""
        match = re.search(
            self._prefix + re.escape(field) + r"[ \t]+(.+)$", content, re.MULTILINE
        )
        if not match:
            return None
        value = match.group(1).strip()
        return value or None

    def read_args(self, content: str) -> List[ScriptArg]:
        return [
            ScriptArg(name=m.group("name"), description=m.group("description").strip())
            for m in self._arg_re.finditer(content)
        ]

    def read_opts(self, content: str, path: Path) -> List[ScriptOpt]:
        opts = []
        for m in self._opt_re.finditer(content):
            payload = m.group("json").strip()
            try:
                opts.append(script_opt_adapter.validate_json(payload))
            except ValidationError as e:
                raise AnnotationError(path, f"invalid option {payload}: {e}") from e
        return opts

    def read_after(self, content: str, path: Path) -> List[str]:
        value = self.read_field(content, "after")
        if not value:
            return []
        deps: List[str] = []
        for token in value.split():
            self._check_dependency(token, path)
            dep = normalize_dependency(token)
            if dep not in deps:
                deps.append(dep)
        return deps

    def read_requires(self, content: str, path: Path) -> List[ScriptRequirement]:
        requirements = []
        for m in self._requires_re.finditer(content):
            tokens = m.group("tokens").split()
            if not tokens:
                continue
            self._check_dependency(tokens[0], path)
            requirements.append(
                ScriptRequirement(
                    script=normalize_dependency(tokens[0]), variables=tokens[1:]
                )
            )
        return requirements

    def parse(self, content: str, path: Path, origin: Origin) -> Script:
        """Parse one script file's text into a ``Script``.

        A missing ``name`` annotation falls back to the file name.

        Raises:
            AnnotationError: on malformed annotations or schema violations.
        """
        logger.debug("Parsing script: %s", path)
        try:
            script = Script(
                name=self.read_field(content, "name") or path.name,
                description=self.read_field(content, "description"),
                after=self.read_after(content, path),
                requires=self.read_requires(content, path),
                identity=ScriptIdentity(directory=path.parent, file_name=path.name),
                origin=origin,
                args=self.read_args(content),
                opts=self.read_opts(content, path),
                stdin=self.read_field(content, "stdin"),
            )
        except ValidationError as e:
            raise AnnotationError(path, str(e)) from e

        logger.debug(
            "Script metadata - name: %s, args: %d, opts: %d, after: %s",
            script.name,
            len(script.args),
            len(script.opts),
            script.dependency_names,
        )
        return script

    def _check_dependency(self, token: str, path: Path) -> None:
        if token.startswith("../"):
            raise AnnotationError(
                path,
                f"dependency '{token}' uses a parent directory reference, "
                "which is not allowed",
            )

    def render_header(
        self,
        name: str,
        description: Optional[str] = None,
        after: Sequence[str] = (),
        requires: Sequence[ScriptRequirement] = (),
        args: Sequence[ScriptArg] = (),
        opts: Sequence[ScriptOpt] = (),
        inherit_stdin: bool = False,
    ) -> str:
        """Render annotation comment lines that ``parse`` reads back."""
        def ref(dep: str) -> str:
            return dep if Path(dep).is_absolute() else f"./{dep}"

        ns = f"# @{self.namespace}."
        lines = [f"{ns}name {name}"]
        if description:
            lines.append(f"{ns}description {description}")
        if after:
            lines.append(f"{ns}after " + " ".join(ref(dep) for dep in after))
        for req in requires:
            lines.append(f"{ns}requires " + " ".join([ref(req.script), *req.variables]))
        for arg in args:
            lines.append(f"{ns}arg {arg.name} {arg.description}")
        for opt in opts:
            lines.append(f"{ns}opt " + json.dumps(opt.model_dump(exclude_none=True)))
        if inherit_stdin:
            lines.append(f"{ns}stdin inherit")
        return "\n".join(lines) + "\n"
