"""
Script bundler - compile a CommonJS entry point into one self-contained script.

Usage:
    bundle = ScriptBundle(basedir=VISUALIZER_DIR, no_parse=[data_path])
    bundle.require(stringify(records), file=data_path)
    bundle.add(VISUALIZER_DIR / "main.js")
    for chunk in bundle.bundle():
        ...

Resolution:
- Only static require('<relative path>') calls are followed.
- A specifier resolves to the first of: exact path, + ".js", + ".json",
  + "/index.js". Modules registered with require() win over the disk.
- .json files become `module.exports = <json>;`.
- no_parse modules and modules registered with require() are emitted verbatim
  and never scanned for dependencies. A registered module is streamed, so it
  can be larger than memory.
- Bare specifiers (package names) are not supported and raise BundleError.

Module ids are assigned in sorted relative-path order, so the same inputs
always produce the same bundle.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Union

from asyncscope.errors import BundleError
from asyncscope.streams import close_source

logger = logging.getLogger(__name__)


REQUIRE_RE = re.compile(r"""\brequire\s*\(\s*(['"])([^'"\n]+)\1\s*\)""")

RESOLVE_SUFFIXES = ("", ".js", ".json")

PRELUDE = """(function (modules, entries) {
  var cache = {};
  function load(id) {
    if (cache[id]) return cache[id].exports;
    var def = modules[id];
    var module = cache[id] = { exports: {} };
    def[0].call(module.exports, function (name) {
      var dep = def[1][name];
      if (dep === undefined) throw new Error("Cannot find module '" + name + "'");
      return load(dep);
    }, module, module.exports);
    return module.exports;
  }
  for (var i = 0; i < entries.length; i++) load(entries[i]);
})({
"""


@dataclass
class _Module:
    path: Path
    source: Optional[str] = None              # None for streamed modules
    stream: Optional[Iterable[str]] = None
    deps: Dict[str, Path] = field(default_factory=dict)


class ScriptBundle:
    """A CommonJS bundle in the making."""

    def __init__(self, basedir: Union[str, Path], no_parse: Iterable[Union[str, Path]] = ()):
        self.basedir = Path(basedir).resolve()
        self.no_parse = {self._abs(p) for p in no_parse}
        self._entries: List[Path] = []
        self._exposed: Dict[Path, Iterable[str]] = {}

    def _abs(self, path: Union[str, Path]) -> Path:
        path = Path(path)
        if not path.is_absolute():
            path = self.basedir / path
        return path.resolve()

    def add(self, entry: Union[str, Path]) -> ScriptBundle:
        """Add an entry point; entries run in the order they were added."""
        self._entries.append(self._abs(entry))
        return self

    def require(self, stream: Iterable[str], file: Union[str, Path]) -> ScriptBundle:
        """Register stream as the contents of the module at file."""
        self._exposed[self._abs(file)] = stream
        return self

    # =========================================================================
    # Resolution
    # =========================================================================

    def _resolve(self, specifier: str, importer: Path) -> Path:
        if not specifier.startswith(("./", "../", "/")):
            raise BundleError(
                f"cannot bundle package {specifier!r} required from {importer}: "
                f"only relative paths are supported"
            )
        base = (importer.parent / specifier).resolve()
        candidates = [Path(str(base) + suffix) for suffix in RESOLVE_SUFFIXES]
        candidates.append(base / "index.js")
        for candidate in candidates:
            if candidate in self._exposed or candidate.is_file():
                return candidate
        raise BundleError(f"cannot find module {specifier!r} required from {importer}")

    def _load(self, path: Path) -> _Module:
        if path in self._exposed:
            return _Module(path=path, stream=self._exposed[path])

        try:
            source = path.read_text(encoding="utf-8")
        except OSError as e:
            raise BundleError(f"cannot read module {path}: {e}") from e

        if path in self.no_parse:
            return _Module(path=path, source=source)

        if path.suffix == ".json":
            try:
                json.loads(source)
            except json.JSONDecodeError as e:
                raise BundleError(f"invalid JSON module {path}: {e}") from e
            return _Module(path=path, source=f"module.exports = {source.strip()};")

        deps = {}
        for match in REQUIRE_RE.finditer(source):
            specifier = match.group(2)
            deps[specifier] = self._resolve(specifier, path)
        return _Module(path=path, source=source, deps=deps)

    def _collect_modules(self) -> Dict[Path, _Module]:
        if not self._entries:
            raise BundleError("bundle has no entry point")

        modules: Dict[Path, _Module] = {}
        pending = list(self._entries)
        while pending:
            path = pending.pop()
            if path in modules:
                continue
            module = self._load(path)
            modules[path] = module
            pending.extend(dep for dep in module.deps.values() if dep not in modules)
        return modules

    def _sort_key(self, path: Path) -> str:
        try:
            return path.relative_to(self.basedir).as_posix()
        except ValueError:
            return path.as_posix()

    # =========================================================================
    # Output
    # =========================================================================

    def bundle(self) -> Iterator[str]:
        """
        Yield the compiled script.

        Resolution errors are raised as BundleError before anything is
        yielded. Registered streams are closed when the generator finishes
        or is closed.
        """
        try:
            modules = self._collect_modules()
            ids = {
                path: index
                for index, path in enumerate(sorted(modules, key=self._sort_key), start=1)
            }
            logger.debug(f"Bundling {len(modules)} modules from {self.basedir}")

            yield PRELUDE
            for path in sorted(modules, key=self._sort_key):
                module = modules[path]
                dep_ids = {spec: ids[dep] for spec, dep in module.deps.items()}
                yield f"{ids[path]}: [function (require, module, exports) {{\n"
                if module.stream is not None:
                    yield "module.exports = "
                    yield from module.stream
                    yield ";"
                else:
                    yield module.source
                yield f"\n}}, {json.dumps(dep_ids, sort_keys=True)}],\n"
            yield f"}}, {json.dumps([ids[e] for e in self._entries])});\n"
        finally:
            for stream in self._exposed.values():
                close_source(stream)
