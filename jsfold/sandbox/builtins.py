"""Built-in globals and prototype methods available inside the sandbox.

Only deterministic built-ins are provided. ``Math.random``, ``Date`` and the
other non-deterministic or side-effecting globals are deliberately absent,
so evaluating code that needs them fails instead of producing a value.
"""

import base64
import binascii
import math
import re
from typing import Any, Callable
from urllib.parse import quote, unquote

from jsfold.errors import EvaluationError
from jsfold.sandbox.values import (
    UNDEFINED,
    JSArray,
    JSFunction,
    JSObject,
    NativeFunction,
    binary_operation,
    is_callable,
    number_to_radix,
    number_to_string,
    strict_equals,
    throw_error,
    to_boolean,
    to_int32,
    to_integer,
    to_number,
    to_property_key,
    to_string,
)

_ESCAPE_SAFE = re.compile(r"[A-Za-z0-9@*_+\-./]")
_FLOAT_PREFIX = re.compile(r"[+-]?(?:Infinity|(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")


def _arg(args: list[Any], index: int) -> Any:
    return args[index] if index < len(args) else UNDEFINED


def _relative_index(value: Any, length: int, default: int) -> int:
    """Resolve a possibly negative slice index against a length."""
    if value is UNDEFINED:
        return default
    index = to_integer(value)
    if index < 0:
        return int(max(length + index, 0))
    return int(min(index, length))


def _this_string(this: Any) -> str:
    if this is UNDEFINED or this is None:
        raise throw_error("TypeError", "String.prototype method called on null or undefined")
    return to_string(this)


def _this_array(this: Any) -> JSArray:
    if not isinstance(this, JSArray):
        raise EvaluationError("array method called on a non-array receiver")
    return this


# -- String.prototype ---------------------------------------------------------

def _char_at(interp, this, args):
    text = _this_string(this)
    index = to_integer(_arg(args, 0))
    return text[int(index)] if 0 <= index < len(text) else ""


def _char_code_at(interp, this, args):
    text = _this_string(this)
    index = to_integer(_arg(args, 0))
    return float(ord(text[int(index)])) if 0 <= index < len(text) else math.nan


def _index_of(interp, this, args):
    text = _this_string(this)
    start = int(min(max(to_integer(_arg(args, 1)), 0), len(text)))
    return float(text.find(to_string(_arg(args, 0)), start))


def _last_index_of(interp, this, args):
    return float(_this_string(this).rfind(to_string(_arg(args, 0))))


def _includes(interp, this, args):
    return to_string(_arg(args, 0)) in _this_string(this)


def _starts_with(interp, this, args):
    return _this_string(this).startswith(to_string(_arg(args, 0)))


def _ends_with(interp, this, args):
    return _this_string(this).endswith(to_string(_arg(args, 0)))


def _string_slice(interp, this, args):
    text = _this_string(this)
    start = _relative_index(_arg(args, 0), len(text), 0)
    end = _relative_index(_arg(args, 1), len(text), len(text))
    return text[start:end]


def _substring(interp, this, args):
    text = _this_string(this)

    def clamp(value: Any, default: int) -> int:
        if value is UNDEFINED:
            return default
        return int(min(max(to_integer(value), 0), len(text)))

    start, end = clamp(_arg(args, 0), 0), clamp(_arg(args, 1), len(text))
    if start > end:
        start, end = end, start
    return text[start:end]


def _substr(interp, this, args):
    text = _this_string(this)
    start = _relative_index(_arg(args, 0), len(text), 0)
    length = _arg(args, 1)
    count = len(text) - start if length is UNDEFINED else int(max(to_integer(length), 0))
    return text[start:start + count]


def _split(interp, this, args):
    text = _this_string(this)
    separator, limit = _arg(args, 0), _arg(args, 1)
    if isinstance(separator, JSObject):
        raise EvaluationError("split by regular expression is not supported")
    if separator is UNDEFINED:
        parts = [text]
    else:
        separator = to_string(separator)
        parts = list(text) if separator == "" else text.split(separator)
    if limit is not UNDEFINED:
        parts = parts[:int(to_integer(limit))]
    return JSArray(parts)


def _replace(interp, this, args):
    text = _this_string(this)
    pattern, replacement = _arg(args, 0), _arg(args, 1)
    if isinstance(pattern, JSObject):
        raise EvaluationError("replace with a regular expression is not supported")
    pattern = to_string(pattern)
    position = text.find(pattern)
    if position < 0:
        return text
    if is_callable(replacement):
        substitute = to_string(interp.call(replacement, UNDEFINED, [pattern, float(position), text]))
    else:
        substitute = to_string(replacement)
        if "$" in substitute:
            raise EvaluationError("replacement patterns are not supported")
    return text[:position] + substitute + text[position + len(pattern):]


def _concat_strings(interp, this, args):
    return _this_string(this) + "".join(to_string(arg) for arg in args)


def _repeat(interp, this, args):
    count = to_integer(_arg(args, 0))
    if count < 0 or math.isinf(count):
        raise throw_error("RangeError", "Invalid count value")
    return _this_string(this) * int(count)


STRING_METHODS: dict[str, NativeFunction] = {
    "charAt": NativeFunction("charAt", _char_at),
    "charCodeAt": NativeFunction("charCodeAt", _char_code_at),
    "indexOf": NativeFunction("indexOf", _index_of),
    "lastIndexOf": NativeFunction("lastIndexOf", _last_index_of),
    "includes": NativeFunction("includes", _includes),
    "startsWith": NativeFunction("startsWith", _starts_with),
    "endsWith": NativeFunction("endsWith", _ends_with),
    "slice": NativeFunction("slice", _string_slice),
    "substring": NativeFunction("substring", _substring),
    "substr": NativeFunction("substr", _substr),
    "split": NativeFunction("split", _split),
    "replace": NativeFunction("replace", _replace),
    "concat": NativeFunction("concat", _concat_strings),
    "repeat": NativeFunction("repeat", _repeat),
    "toUpperCase": NativeFunction("toUpperCase", lambda interp, this, args: _this_string(this).upper()),
    "toLowerCase": NativeFunction("toLowerCase", lambda interp, this, args: _this_string(this).lower()),
    "trim": NativeFunction("trim", lambda interp, this, args: _this_string(this).strip()),
    "toString": NativeFunction("toString", lambda interp, this, args: _this_string(this)),
    "valueOf": NativeFunction("valueOf", lambda interp, this, args: _this_string(this)),
}


# -- Number.prototype ---------------------------------------------------------

def _number_to_string(interp, this, args):
    radix = _arg(args, 0)
    return number_to_radix(to_number(this), 10 if radix is UNDEFINED else int(to_integer(radix)))


def _to_fixed(interp, this, args):
    digits = int(to_integer(_arg(args, 0)))
    if not 0 <= digits <= 100:
        raise throw_error("RangeError", "toFixed() digits argument must be between 0 and 100")
    value = to_number(this)
    if math.isnan(value) or abs(value) >= 1e21:
        return number_to_string(value)
    return f"{value:.{digits}f}"


NUMBER_METHODS: dict[str, NativeFunction] = {
    "toString": NativeFunction("toString", _number_to_string),
    "toFixed": NativeFunction("toFixed", _to_fixed),
    "valueOf": NativeFunction("valueOf", lambda interp, this, args: to_number(this)),
}

BOOLEAN_METHODS: dict[str, NativeFunction] = {
    "toString": NativeFunction("toString", lambda interp, this, args: to_string(this)),
    "valueOf": NativeFunction("valueOf", lambda interp, this, args: this),
}


# -- Array.prototype ----------------------------------------------------------

def _join(interp, this, args):
    array = _this_array(this)
    separator = _arg(args, 0)
    separator = "," if separator is UNDEFINED else to_string(separator)
    return separator.join(
        "" if item is UNDEFINED or item is None else to_string(item)
        for item in array.elements
    )


def _push(interp, this, args):
    array = _this_array(this)
    array.elements.extend(args)
    return float(len(array.elements))


def _pop(interp, this, args):
    array = _this_array(this)
    return array.elements.pop() if array.elements else UNDEFINED


def _shift(interp, this, args):
    array = _this_array(this)
    return array.elements.pop(0) if array.elements else UNDEFINED


def _unshift(interp, this, args):
    array = _this_array(this)
    array.elements[0:0] = args
    return float(len(array.elements))


def _array_slice(interp, this, args):
    array = _this_array(this)
    length = len(array.elements)
    start = _relative_index(_arg(args, 0), length, 0)
    end = _relative_index(_arg(args, 1), length, length)
    return JSArray(array.elements[start:end])


def _splice(interp, this, args):
    array = _this_array(this)
    length = len(array.elements)
    start = _relative_index(_arg(args, 0), length, 0)
    if len(args) < 2:
        count = length - start
    else:
        count = int(min(max(to_integer(args[1]), 0), length - start))
    removed = array.elements[start:start + count]
    array.elements[start:start + count] = args[2:]
    return JSArray(removed)


def _reverse(interp, this, args):
    array = _this_array(this)
    array.elements.reverse()
    return array


def _array_index_of(interp, this, args):
    array = _this_array(this)
    target = _arg(args, 0)
    for position, item in enumerate(array.elements):
        if strict_equals(item, target):
            return float(position)
    return -1.0


def _array_includes(interp, this, args):
    return _array_index_of(interp, this, args) >= 0


def _array_concat(interp, this, args):
    elements = list(_this_array(this).elements)
    for arg in args:
        if isinstance(arg, JSArray):
            elements.extend(arg.elements)
        else:
            elements.append(arg)
    return JSArray(elements)


def _callback(args: list[Any]) -> Any:
    callback = _arg(args, 0)
    if not is_callable(callback):
        raise throw_error("TypeError", f"{to_string(callback)} is not a function")
    return callback


def _map(interp, this, args):
    array, callback = _this_array(this), _callback(args)
    return JSArray([
        interp.call(callback, UNDEFINED, [item, float(i), array])
        for i, item in enumerate(list(array.elements))
    ])


def _filter(interp, this, args):
    array, callback = _this_array(this), _callback(args)
    return JSArray([
        item for i, item in enumerate(list(array.elements))
        if to_boolean(interp.call(callback, UNDEFINED, [item, float(i), array]))
    ])


def _for_each(interp, this, args):
    array, callback = _this_array(this), _callback(args)
    for i, item in enumerate(list(array.elements)):
        interp.call(callback, UNDEFINED, [item, float(i), array])
    return UNDEFINED


def _reduce(interp, this, args):
    array, callback = _this_array(this), _callback(args)
    items = list(enumerate(array.elements))
    if len(args) > 1:
        accumulator = args[1]
    elif items:
        accumulator = items.pop(0)[1]
    else:
        raise throw_error("TypeError", "Reduce of empty array with no initial value")
    for i, item in items:
        accumulator = interp.call(callback, UNDEFINED, [accumulator, item, float(i), array])
    return accumulator


ARRAY_METHODS: dict[str, NativeFunction] = {
    "join": NativeFunction("join", _join),
    "push": NativeFunction("push", _push),
    "pop": NativeFunction("pop", _pop),
    "shift": NativeFunction("shift", _shift),
    "unshift": NativeFunction("unshift", _unshift),
    "slice": NativeFunction("slice", _array_slice),
    "splice": NativeFunction("splice", _splice),
    "reverse": NativeFunction("reverse", _reverse),
    "indexOf": NativeFunction("indexOf", _array_index_of),
    "includes": NativeFunction("includes", _array_includes),
    "concat": NativeFunction("concat", _array_concat),
    "map": NativeFunction("map", _map),
    "filter": NativeFunction("filter", _filter),
    "forEach": NativeFunction("forEach", _for_each),
    "reduce": NativeFunction("reduce", _reduce),
    "toString": NativeFunction("toString", _join),
}


# -- Function.prototype / Object.prototype -------------------------------------

def _function_call(interp, this, args):
    return interp.call(this, _arg(args, 0), list(args[1:]))


def _function_apply(interp, this, args):
    arguments = _arg(args, 1)
    if arguments is UNDEFINED or arguments is None:
        arguments = JSArray()
    if not isinstance(arguments, JSArray):
        raise throw_error("TypeError", "CreateListFromArrayLike called on non-object")
    return interp.call(this, _arg(args, 0), list(arguments.elements))


FUNCTION_METHODS: dict[str, NativeFunction] = {
    "call": NativeFunction("call", _function_call),
    "apply": NativeFunction("apply", _function_apply),
}

OBJECT_METHODS: dict[str, NativeFunction] = {
    "hasOwnProperty": NativeFunction(
        "hasOwnProperty",
        lambda interp, this, args: isinstance(this, JSObject) and this.has(to_property_key(_arg(args, 0))),
    ),
}


def get_property(value: Any, key: str) -> Any:
    """Property lookup, including the prototype methods of primitives."""
    if value is UNDEFINED or value is None:
        raise throw_error("TypeError", f"Cannot read properties of {to_string(value)} (reading '{key}')")
    if isinstance(value, str):
        if key == "length":
            return float(len(value))
        if key.isdigit():
            index = int(key)
            return value[index] if index < len(value) else UNDEFINED
        return STRING_METHODS.get(key, UNDEFINED)
    if isinstance(value, bool):
        return BOOLEAN_METHODS.get(key, UNDEFINED)
    if isinstance(value, (int, float)):
        return NUMBER_METHODS.get(key, UNDEFINED)
    if value.has(key):
        return value.get(key)
    if isinstance(value, JSArray):
        return ARRAY_METHODS.get(key, UNDEFINED)
    if isinstance(value, (JSFunction, NativeFunction)):
        if key == "name":
            return value.name
        return FUNCTION_METHODS.get(key, UNDEFINED)
    return OBJECT_METHODS.get(key, UNDEFINED)


def put_property(value: Any, key: str, item: Any) -> None:
    if value is UNDEFINED or value is None:
        raise throw_error("TypeError", f"Cannot set properties of {to_string(value)} (setting '{key}')")
    if isinstance(value, JSObject):
        value.put(key, item)
    # Writes to primitives are silently dropped in sloppy mode.


# -- Global functions ---------------------------------------------------------

def _parse_int(interp, this, args):
    text = to_string(_arg(args, 0)).strip()
    sign = 1
    if text[:1] in ("+", "-"):
        sign = -1 if text[0] == "-" else 1
        text = text[1:]
    radix = to_int32(_arg(args, 1))
    if radix == 0:
        radix = 10
        if text[:2].lower() == "0x":
            radix, text = 16, text[2:]
    elif radix == 16 and text[:2].lower() == "0x":
        text = text[2:]
    if not 2 <= radix <= 36:
        return math.nan
    digits = ""
    for char in text.lower():
        if char not in "0123456789abcdefghijklmnopqrstuvwxyz"[:radix]:
            break
        digits += char
    if not digits:
        return math.nan
    return float(sign * int(digits, radix))


def _parse_float(interp, this, args):
    match = _FLOAT_PREFIX.match(to_string(_arg(args, 0)).strip())
    if not match:
        return math.nan
    return float(match.group(0).replace("Infinity", "inf"))


def _from_char_code(interp, this, args):
    return "".join(chr(to_int32(arg) & 0xFFFF) for arg in args)


def _escape(interp, this, args):
    out = []
    for char in to_string(_arg(args, 0)):
        code = ord(char)
        if _ESCAPE_SAFE.match(char):
            out.append(char)
        elif code < 256:
            out.append(f"%{code:02X}")
        else:
            out.append(f"%u{code:04X}")
    return "".join(out)


def _unescape(interp, this, args):
    return re.sub(
        r"%u([0-9a-fA-F]{4})|%([0-9a-fA-F]{2})",
        lambda m: chr(int(m.group(1) or m.group(2), 16)),
        to_string(_arg(args, 0)),
    )


def _decode_uri_component(interp, this, args):
    text = to_string(_arg(args, 0))
    try:
        return unquote(text, errors="strict")
    except UnicodeDecodeError:
        raise throw_error("URIError", "URI malformed")


def _atob(interp, this, args):
    try:
        return base64.b64decode(to_string(_arg(args, 0)), validate=True).decode("latin-1")
    except (binascii.Error, ValueError):
        raise throw_error("InvalidCharacterError", "The string to be decoded is not correctly encoded.")


def _btoa(interp, this, args):
    try:
        raw = to_string(_arg(args, 0)).encode("latin-1")
    except UnicodeEncodeError:
        raise throw_error("InvalidCharacterError", "The string to be encoded contains characters outside of the Latin1 range.")
    return base64.b64encode(raw).decode("ascii")


def _math_round(interp, this, args):
    value = to_number(_arg(args, 0))
    if math.isnan(value) or math.isinf(value):
        return value
    return float(math.floor(value + 0.5))


def _math_extreme(pick: Callable[..., float], empty: float) -> Callable[..., float]:
    def impl(interp, this, args):
        numbers = [to_number(arg) for arg in args]
        if any(math.isnan(n) for n in numbers):
            return math.nan
        return pick(numbers) if numbers else empty
    return impl


def _math_unary(func: Callable[[float], float]) -> Callable[..., float]:
    def impl(interp, this, args):
        value = to_number(_arg(args, 0))
        if math.isnan(value):
            return math.nan
        try:
            return float(func(value))
        except (ValueError, OverflowError):
            return math.nan
    return impl


def _math_sqrt(value: float) -> float:
    return math.sqrt(value) if value >= 0 else math.nan


def _math_sign(value: float) -> float:
    if value == 0:
        return value
    return 1.0 if value > 0 else -1.0


def _math_floor(value: float) -> float:
    return value if math.isinf(value) else math.floor(value)


def _math_ceil(value: float) -> float:
    return value if math.isinf(value) else math.ceil(value)


def _math_trunc(value: float) -> float:
    return value if math.isinf(value) else math.trunc(value)


def _make_math() -> JSObject:
    members: dict[str, Any] = {
        "PI": math.pi,
        "E": math.e,
        "abs": NativeFunction("abs", _math_unary(abs)),
        "floor": NativeFunction("floor", _math_unary(_math_floor)),
        "ceil": NativeFunction("ceil", _math_unary(_math_ceil)),
        "trunc": NativeFunction("trunc", _math_unary(_math_trunc)),
        "sqrt": NativeFunction("sqrt", _math_unary(_math_sqrt)),
        "sign": NativeFunction("sign", _math_unary(_math_sign)),
        "round": NativeFunction("round", _math_round),
        "max": NativeFunction("max", _math_extreme(max, -math.inf)),
        "min": NativeFunction("min", _math_extreme(min, math.inf)),
        "pow": NativeFunction(
            "pow",
            lambda interp, this, args: _math_pow(to_number(_arg(args, 0)), to_number(_arg(args, 1))),
        ),
    }
    return JSObject(members)


def _math_pow(base: float, exponent: float) -> float:
    return binary_operation("**", base, exponent)


def _make_string_constructor() -> NativeFunction:
    constructor = NativeFunction(
        "String",
        lambda interp, this, args: to_string(args[0]) if args else "",
    )
    constructor.put("fromCharCode", NativeFunction("fromCharCode", _from_char_code))
    return constructor


def make_globals() -> dict[str, Any]:
    """Fresh set of global bindings for one interpreter."""
    return {
        "undefined": UNDEFINED,
        "NaN": math.nan,
        "Infinity": math.inf,
        "String": _make_string_constructor(),
        "Number": NativeFunction("Number", lambda interp, this, args: to_number(args[0]) if args else 0.0),
        "Boolean": NativeFunction("Boolean", lambda interp, this, args: to_boolean(_arg(args, 0))),
        "parseInt": NativeFunction("parseInt", _parse_int),
        "parseFloat": NativeFunction("parseFloat", _parse_float),
        "isNaN": NativeFunction("isNaN", lambda interp, this, args: math.isnan(to_number(_arg(args, 0)))),
        "isFinite": NativeFunction(
            "isFinite",
            lambda interp, this, args: math.isfinite(to_number(_arg(args, 0))),
        ),
        "Math": _make_math(),
        "escape": NativeFunction("escape", _escape),
        "unescape": NativeFunction("unescape", _unescape),
        "encodeURIComponent": NativeFunction(
            "encodeURIComponent",
            lambda interp, this, args: quote(to_string(_arg(args, 0)), safe="-_.!~*'()"),
        ),
        "decodeURIComponent": NativeFunction("decodeURIComponent", _decode_uri_component),
        "atob": NativeFunction("atob", _atob),
        "btoa": NativeFunction("btoa", _btoa),
    }
