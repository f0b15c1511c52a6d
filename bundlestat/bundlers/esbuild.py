"""esbuild-backed bundler with optional terser minification."""

from __future__ import annotations

import json
import re
import subprocess
import time
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from ..logging import get_logger
from ..models import ModuleRecord
from .base import BundleConfig, BundleOutput, Bundler, BundlerFailure

_ERROR_LINE = re.compile(r"^\s*(?:✘\s*)?\[ERROR\]\s*(.+)$")
_MISSING_MODULE = re.compile(r'Could not resolve "([^"]+)"')
_NAMESPACE_PREFIX = re.compile(r"^\([a-z-]+\):")

Runner = Callable[..., str]

logger = get_logger("bundlers.esbuild")


class EsbuildBundler(Bundler):
    """Drives the ``esbuild`` CLI and reads the module graph from its metafile."""

    name = "esbuild"

    def __init__(
        self,
        executable: str = "esbuild",
        terser_executable: str = "terser",
        runner: Runner | None = None,
    ) -> None:
        self.executable = executable
        self.terser_executable = terser_executable
        self._runner = runner or self._default_runner

    def bundle(self, config: BundleConfig) -> BundleOutput:
        deadline = time.monotonic() + config.timeout if config.timeout else None
        config.output_dir.mkdir(parents=True, exist_ok=True)
        metafile = config.output_dir / "meta.json"

        self._run(
            self.build_args(config, metafile),
            cwd=config.working_dir,
            deadline=deadline,
            stage="compile",
        )

        try:
            meta = json.loads(metafile.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise BundlerFailure("launch", [f"esbuild metafile unreadable: {exc}"]) from exc

        files: Dict[str, bytes] = {}
        modules_by_file: Dict[str, List[ModuleRecord]] = {}
        outputs = meta.get("outputs", {}) if isinstance(meta, dict) else {}
        for output_key, output_meta in sorted(outputs.items()):
            if output_key.endswith(".map"):
                continue
            output_path = config.working_dir / output_key
            files[output_path.name] = output_path.read_bytes()
            modules_by_file[output_path.name] = _modules_from_output(config.working_dir, output_meta)

        js_name = config.output_filename
        if config.minifier == "terser" and js_name in files:
            unminified = files[js_name]
            minified = self._minify_with_terser(config, deadline)
            modules_by_file[js_name] = rescale_modules(
                modules_by_file.get(js_name, []), len(unminified), len(minified)
            )
            files[js_name] = minified

        return BundleOutput(files=files, modules=modules_by_file)

    def build_args(self, config: BundleConfig, metafile: Path) -> List[str]:
        """Return the esbuild argv for ``config``; identical configs give identical argv."""
        args = [
            self.executable,
            str(config.entry_path),
            "--bundle",
            f"--outfile={config.output_path}",
            f"--format={config.format}",
            f"--platform={config.platform}",
            f"--target={config.target}",
            f"--main-fields={','.join(config.main_fields)}",
            "--legal-comments=none",
            "--charset=utf8",
            "--log-level=error",
            "--log-limit=0",
            "--color=false",
            f"--metafile={metafile}",
        ]
        for key, value in config.defines:
            args.append(f"--define:{key}={value}")
        if config.minifier == "esbuild":
            args.append("--minify")
        for pattern in config.external_packages:
            args.append(f"--external:{pattern}")
        for builtin in config.stubbed_builtins:
            args.append(f"--external:{builtin}")
        args.append("--external:node:*")
        return args

    def _minify_with_terser(self, config: BundleConfig, deadline: Optional[float]) -> bytes:
        minified_path = config.output_dir / f"{config.entry_name}.min.js"
        args = [
            self.terser_executable,
            str(config.output_path),
            "--compress",
            "--mangle",
            "--comments=false",
            "--output",
            str(minified_path),
        ]
        self._run(args, cwd=config.working_dir, deadline=deadline, stage="minify")
        try:
            return minified_path.read_bytes()
        except OSError as exc:
            raise BundlerFailure("minify", [f"terser produced no output: {exc}"]) from exc

    def _run(
        self,
        args: Sequence[str],
        *,
        cwd: Path,
        deadline: Optional[float],
        stage: str,
    ) -> str:
        timeout = None
        if deadline is not None:
            timeout = max(deadline - time.monotonic(), 0.0)
        logger.debug("Running %s", " ".join(args[:2]))
        try:
            return self._runner(args, cwd=cwd, timeout=timeout)
        except subprocess.TimeoutExpired as exc:
            raise BundlerFailure(stage, [f"timed out after {exc.timeout}s"], timed_out=True) from exc
        except FileNotFoundError as exc:
            raise BundlerFailure("launch", [f"Unable to locate '{args[0]}': {exc}"]) from exc
        except subprocess.CalledProcessError as exc:
            stderr = _decode(exc.stderr)
            if exc.returncode < 0:
                raise BundlerFailure(
                    "launch", [f"{args[0]} killed by signal {-exc.returncode}"], exit_code=exc.returncode
                ) from exc
            messages = parse_error_messages(stderr)
            if stage == "minify":
                raise BundlerFailure(
                    "minify", messages or [stderr.strip() or f"{args[0]} exited with {exc.returncode}"],
                    exit_code=exc.returncode,
                ) from exc
            if not messages:
                # Exited non-zero without reporting a build error.
                raise BundlerFailure(
                    "launch", [stderr.strip() or f"{args[0]} exited with {exc.returncode}"],
                    exit_code=exc.returncode,
                ) from exc
            missing = [match for message in messages for match in _MISSING_MODULE.findall(message)]
            raise BundlerFailure(
                stage, messages, missing_modules=missing, exit_code=exc.returncode
            ) from exc

    @staticmethod
    def _default_runner(
        args: Iterable[str],
        *,
        cwd: Path,
        timeout: Optional[float] = None,
    ) -> str:
        completed = subprocess.run(
            list(args),
            cwd=str(cwd),
            check=True,
            text=True,
            capture_output=True,
            timeout=timeout,
        )
        return completed.stdout


def parse_error_messages(stderr: str) -> List[str]:
    """Extract the ``[ERROR]`` headlines from esbuild/terser stderr."""
    messages: List[str] = []
    for line in stderr.splitlines():
        match = _ERROR_LINE.match(line)
        if match:
            messages.append(match.group(1).strip())
        elif line.startswith(("ERROR:", "Parse error")):
            messages.append(line.strip())
    return messages


def rescale_modules(modules: Sequence[ModuleRecord], from_total: int, to_total: int) -> List[ModuleRecord]:
    """Scale module sizes from ``from_total`` to ``to_total`` bytes using largest remainders.

    The scaffolding share (``from_total`` minus the module sum) scales with
    them, so the rescaled modules keep their proportion of the final output.
    """
    if from_total <= 0 or not modules:
        return list(modules)
    module_total = sum(module.size for module in modules)
    target = module_total * to_total // from_total
    exact = [module.size * to_total / from_total for module in modules]
    floors = [int(value) for value in exact]
    shortfall = target - sum(floors)
    order = sorted(range(len(modules)), key=lambda index: (floors[index] - exact[index], index))
    for index in order[: max(shortfall, 0)]:
        floors[index] += 1
    return [ModuleRecord(path=module.path, size=size) for module, size in zip(modules, floors)]


def _modules_from_output(working_dir: Path, output_meta: object) -> List[ModuleRecord]:
    if not isinstance(output_meta, dict):
        return []
    inputs = output_meta.get("inputs", {})
    if not isinstance(inputs, dict):
        return []
    records: List[ModuleRecord] = []
    for input_path, input_meta in sorted(inputs.items()):
        if not isinstance(input_meta, dict):
            continue
        size = input_meta.get("bytesInOutput", 0)
        if not isinstance(size, int) or size <= 0:
            continue
        cleaned = _NAMESPACE_PREFIX.sub("", input_path)
        records.append(ModuleRecord(path=(working_dir / cleaned), size=size))
    return records


def _decode(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


__all__ = ["EsbuildBundler", "parse_error_messages", "rescale_modules"]
