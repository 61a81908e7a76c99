"""Values and function source that can cross the execution boundary."""

from __future__ import annotations

import ast
import dis
import inspect
import math
import textwrap
from collections.abc import Callable, Mapping
from types import CodeType
from typing import Any

from appbridge.errors import ClosureCaptureError, SerializationError
from appbridge.types import JSONValue

LAMBDA_NAME = "<lambda>"


def encode_value(value: Any, path: str = "$") -> JSONValue:
    """Return a plain JSON copy of `value` or raise `SerializationError`.

    Tuples become lists and `str`/`int` subclasses (enum members) collapse
    to their base type. Anything else that is not a JSON value is rejected
    with the path of the first offending element.
    """

    return _encode(value, path, set())


def _encode(value: Any, path: str, active: set[int]) -> JSONValue:
    if value is None or isinstance(value, bool):
        return value
    if isinstance(value, int):
        return int(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            raise SerializationError(path, "float", f"{value!r} is not a finite number")
        return float(value)
    if isinstance(value, str):
        return str(value)

    if isinstance(value, (list, tuple, Mapping)):
        marker = id(value)
        if marker in active:
            raise SerializationError(path, type(value).__name__, "circular reference")
        active.add(marker)
        try:
            if isinstance(value, Mapping):
                return _encode_mapping(value, path, active)
            return [_encode(item, f"{path}[{index}]", active) for index, item in enumerate(value)]
        finally:
            active.discard(marker)

    raise SerializationError(path, type(value).__name__, _rejection_detail(value))


def _encode_mapping(value: Mapping[Any, Any], path: str, active: set[int]) -> dict[str, JSONValue]:
    encoded: dict[str, JSONValue] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            raise SerializationError(f"{path}[{key!r}]", type(key).__name__, "object keys must be strings")
        encoded[str(key)] = _encode(item, f"{path}.{key}", active)
    return encoded


def _rejection_detail(value: Any) -> str:
    if callable(value):
        return "functions cannot be sent as values"
    if isinstance(value, (set, frozenset)):
        return "sets are not JSON arrays, convert to a list first"
    if isinstance(value, (bytes, bytearray, memoryview)):
        return "binary data must be decoded or base64-encoded first"
    return "only None, bool, int, float, str, list, tuple and dict values are supported"


def encode_args(args: tuple[Any, ...]) -> list[JSONValue]:
    return [encode_value(arg, f"args[{index}]") for index, arg in enumerate(args)]


def function_source(fn: Callable[..., Any] | str) -> str:
    """Return the source text to ship for `fn`.

    Strings pass through unchanged. Callables must be plain functions or
    lambdas whose source is available and which do not capture outer names.
    """

    if isinstance(fn, str):
        if not fn.strip():
            raise SerializationError("script", "str", "script is empty")
        return fn
    if not inspect.isfunction(fn):
        detail = "only functions, lambdas or source strings can be executed"
        raise SerializationError("script", type(fn).__name__, detail)

    check_closure(fn)
    try:
        raw = inspect.getsource(fn)
    except (OSError, TypeError) as exc:
        raise SerializationError("script", "function", f"source of {fn.__qualname__} is not available") from exc

    source = textwrap.dedent(raw)
    if fn.__name__ == LAMBDA_NAME:
        return _lambda_source(fn, source)
    return _def_source(fn, source)


def check_closure(fn: Callable[..., Any]) -> None:
    """Reject functions that depend on captured variables or module globals.

    Only names the bytecode actually loads as globals count; attribute names
    that happen to match a module global do not.
    """

    code = fn.__code__
    builtins = fn.__builtins__ if isinstance(fn.__builtins__, dict) else vars(fn.__builtins__)
    captured = set(code.co_freevars)
    for name in _loaded_globals(code):
        if name in fn.__globals__ or name not in builtins:
            captured.add(name)
    if captured:
        raise ClosureCaptureError(fn.__qualname__, sorted(captured))


def _loaded_globals(code: CodeType) -> set[str]:
    names = {instruction.argval for instruction in dis.get_instructions(code) if instruction.opname == "LOAD_GLOBAL"}
    for const in code.co_consts:
        if inspect.iscode(const):
            names |= _loaded_globals(const)
    return names


def _def_source(fn: Callable[..., Any], source: str) -> str:
    tree = _parse_prefix(source)
    for node in tree.body:
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)) and node.name == fn.__name__:
            # Decorators are not part of the segment, which starts at `def`.
            segment = ast.get_source_segment(source, node)
            if segment:
                return textwrap.dedent(segment)
    raise SerializationError("script", "function", f"could not isolate the source of {fn.__qualname__}")


def _lambda_source(fn: Callable[..., Any], source: str) -> str:
    text, tree = _parse_lenient(source)
    lambdas = [node for node in ast.walk(tree) if isinstance(node, ast.Lambda)]
    segments = [segment for node in lambdas if (segment := ast.get_source_segment(text, node))]
    if len(segments) == 1:
        return segments[0]

    code = fn.__code__
    for segment in segments:
        if _same_code(segment, code, exact=True):
            return segment
    for segment in segments:
        if _same_code(segment, code, exact=False):
            return segment
    raise SerializationError("script", "function", "could not isolate the lambda's source; pass it as a string instead")


def _same_code(segment: str, code: CodeType, *, exact: bool) -> bool:
    try:
        compiled = compile(segment, "<lambda-candidate>", "eval")
    except SyntaxError:
        return False
    candidate = next((const for const in compiled.co_consts if inspect.iscode(const)), None)
    if candidate is None:
        return False
    if candidate.co_varnames[: candidate.co_argcount] != code.co_varnames[: code.co_argcount]:
        return False
    if not exact:
        return True
    return (candidate.co_code, candidate.co_names, _plain_consts(candidate)) == (
        code.co_code,
        code.co_names,
        _plain_consts(code),
    )


def _plain_consts(code: CodeType) -> tuple[Any, ...]:
    return tuple(const for const in code.co_consts if not inspect.iscode(const))


def _parse_prefix(source: str) -> ast.Module:
    try:
        return ast.parse(source)
    except SyntaxError as exc:
        raise SerializationError("script", "function", f"source does not parse: {exc.msg}") from exc


def _parse_lenient(source: str) -> tuple[str, ast.Module]:
    """Parse the lines `inspect` returned for a lambda.

    Those lines can start or stop in the middle of an enclosing expression,
    so trailing characters are dropped until what remains parses.
    """

    text = source.rstrip()
    for candidate in (text, f"({text})"):
        try:
            return candidate, ast.parse(candidate)
        except SyntaxError:
            pass
    while text:
        text = text[:-1].rstrip()
        try:
            return text, ast.parse(text)
        except SyntaxError:
            continue
    raise SerializationError("script", "function", "could not parse the lambda's source; pass it as a string instead")
