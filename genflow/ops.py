"""Callback-style operations for use from genflow computations

These all follow the error-first callback convention the broker expects:
the callback is fired exactly once, with an exception, or with None followed
by the results.

"""
from __future__ import annotations
from genflow.driver import coroutine
from genflow.broker import Callback
from genflow.errors import GenflowError
from pathlib import Path
import json
import logging
import os
import trio
import typing as t

__all__ = [
    'CommandFailed',
    'ManifestNotFound',
    'access',
    'load_json',
    'dump_json',
    'sleep',
    'run_command',
    'find_manifest',
]

logger = logging.getLogger(__name__)

class CommandFailed(GenflowError):
    def __init__(self, argv: t.Sequence[t.Union[str, os.PathLike]], returncode: int,
                 stdout: bytes, stderr: bytes) -> None:
        super().__init__(f"command {list(argv)} exited with status {returncode}")
        self.argv = argv
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr

class ManifestNotFound(GenflowError):
    pass

def access(path: t.Union[str, os.PathLike], cb: Callback) -> None:
    "Fire `cb` with FileNotFoundError if `path` doesn't exist"
    if os.path.exists(path):
        cb(None)
    else:
        cb(FileNotFoundError(f"no such file or directory: {os.fspath(path)!r}"))

def load_json(path: t.Union[str, os.PathLike], cb: Callback) -> None:
    try:
        with open(path) as f:
            data = json.load(f)
    except (OSError, ValueError) as exn:
        cb(exn)
    else:
        cb(None, data)

def dump_json(path: t.Union[str, os.PathLike], data: t.Any, cb: Callback, indent: int = 2) -> None:
    try:
        with open(path, 'w') as f:
            json.dump(data, f, indent=indent)
            f.write('\n')
    except (OSError, TypeError, ValueError) as exn:
        cb(exn)
    else:
        cb(None)

def sleep(nursery: trio.Nursery, seconds: float, cb: Callback, *values: t.Any) -> None:
    "Fire `cb(None, *values)` from a trio task after `seconds`"
    async def sleeper() -> None:
        await trio.sleep(seconds)
        cb(None, *values)
    nursery.start_soon(sleeper)

def run_command(nursery: trio.Nursery, argv: t.Sequence[t.Union[str, os.PathLike]], cb: Callback,
                cwd: t.Optional[t.Union[str, os.PathLike]] = None) -> None:
    """Run a command in a trio task, then fire `cb(None, stdout, stderr)`

    A nonzero exit status fires `cb` with CommandFailed, which carries the
    output; failing to start the command fires `cb` with the OSError.

    """
    async def runner() -> None:
        logger.debug("run_command: running %s in %s", argv, cwd)
        try:
            proc = await trio.run_process(argv, cwd=cwd, capture_stdout=True, capture_stderr=True, check=False)
        except OSError as exn:
            cb(exn)
            return
        if proc.returncode != 0:
            cb(CommandFailed(argv, proc.returncode, proc.stdout, proc.stderr))
        else:
            cb(None, proc.stdout, proc.stderr)
    nursery.start_soon(runner)

@coroutine
def find_manifest(callback, entry: t.Union[str, os.PathLike], name: str = "package.json"):
    """Find the closest manifest named `name` in `entry`'s directory or its parents

    Returns the directory containing the manifest, and its parsed contents.

    """
    directory = Path(entry).resolve().parent
    while True:
        manifest = directory/name
        try:
            yield access(manifest, callback())
        except FileNotFoundError:
            if directory.parent == directory:
                raise ManifestNotFound(f"no {name} found above {os.fspath(entry)!r}")
            directory = directory.parent
        else:
            data = yield load_json(manifest, callback())
            return directory, data
