from __future__ import annotations

import re
from enum import Enum
from pathlib import Path
from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    field_validator,
    model_validator,
)

# Argument and option names double as environment variable names.
NAME_PATTERN = r"^[A-Za-z0-9_]+$"


class Origin(str, Enum):
    bundled = "bundled"
    external = "external"


class StdinMode(str, Enum):
    inherit = "inherit"


class ScriptIdentity(BaseModel):
    """Directory plus file name; unique across every discovered script."""

    model_config = ConfigDict(frozen=True)

    directory: Path
    file_name: str

    @property
    def path(self) -> Path:
        return self.directory / self.file_name

    def __str__(self) -> str:
        return str(self.path)


class ScriptArg(BaseModel):
    name: str = Field(..., pattern=NAME_PATTERN)
    description: str = ""


class ScriptRequirement(BaseModel):
    script: str = Field(..., min_length=1)
    variables: List[str] = Field(default_factory=list)


class _OptBase(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., pattern=NAME_PATTERN)
    description: str
    optional: bool = False


class BooleanOpt(_OptBase):
    type: Literal["boolean"] = "boolean"
    default: Optional[bool] = None


class StringOpt(_OptBase):
    type: Literal["string"] = "string"
    default: Optional[str] = None
    pattern: Optional[str] = None
    pattern_help: Optional[str] = None

    @field_validator("pattern")
    @classmethod
    def _pattern_compiles(cls, value: Optional[str]) -> Optional[str]:
        if value is not None:
            try:
                re.compile(value)
            except re.error as e:
                raise ValueError(f"invalid pattern {value!r}: {e}") from e
        return value


class WorktreeOpt(_OptBase):
    type: Literal["worktree"] = "worktree"
    base_dir_arg: str = Field(
        ..., validation_alias=AliasChoices("base_dir_arg", "baseDirArg")
    )
    default: Optional[str] = None


ScriptOpt = Annotated[
    Union[BooleanOpt, StringOpt, WorktreeOpt], Field(discriminator="type")
]
script_opt_adapter: TypeAdapter = TypeAdapter(ScriptOpt)


class Script(BaseModel):
    """A discovered, validated script and everything declared in its header."""

    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    after: List[str] = Field(default_factory=list)
    requires: List[ScriptRequirement] = Field(default_factory=list)
    identity: ScriptIdentity
    origin: Origin
    args: List[ScriptArg] = Field(default_factory=list)
    opts: List[ScriptOpt] = Field(default_factory=list)
    stdin: Optional[StdinMode] = None

    @model_validator(mode="after")
    def _check_opts(self) -> "Script":
        seen = set()
        for opt in self.opts:
            if opt.name in seen:
                raise ValueError(f"option {opt.name} is declared more than once")
            seen.add(opt.name)
        arg_names = {arg.name for arg in self.args}
        for opt in self.opts:
            if isinstance(opt, WorktreeOpt) and opt.base_dir_arg not in arg_names:
                raise ValueError(
                    f"worktree option {opt.name} refers to unknown argument "
                    f"{opt.base_dir_arg}"
                )
        return self

    @property
    def path(self) -> Path:
        return self.identity.path

    @property
    def tag(self) -> str:
        return self.identity.file_name

    @property
    def key(self) -> str:
        """Key used for the persisted selection."""
        if self.origin == Origin.bundled:
            return self.identity.file_name
        return str(self.identity.path)

    @property
    def inherits_stdin(self) -> bool:
        return self.stdin == StdinMode.inherit

    @property
    def dependency_names(self) -> List[str]:
        names: List[str] = []
        for name in self.after + [r.script for r in self.requires]:
            if name not in names:
                names.append(name)
        return names

    def __str__(self) -> str:
        return f"{self.name} ({self.tag})"


ParamValue = Union[bool, str]


class GlobalState(BaseModel):
    """User-wide document: argument values and registered script directories."""

    model_config = ConfigDict(populate_by_name=True)

    args: Dict[str, ParamValue] = Field(default_factory=dict)
    script_dirs: List[str] = Field(default_factory=list, alias="scriptDirs")


class ProjectState(BaseModel):
    """Per working directory document: last selection and option values."""

    selected: List[str] = Field(default_factory=list)
    opts: Dict[str, Optional[ParamValue]] = Field(default_factory=dict)


__all__ = [
    "NAME_PATTERN",
    "Origin",
    "StdinMode",
    "ScriptIdentity",
    "ScriptArg",
    "ScriptRequirement",
    "BooleanOpt",
    "StringOpt",
    "WorktreeOpt",
    "ScriptOpt",
    "script_opt_adapter",
    "Script",
    "ParamValue",
    "GlobalState",
    "ProjectState",
]
