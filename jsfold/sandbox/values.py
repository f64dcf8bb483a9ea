"""JavaScript value model and the coercions shared by the sandbox and the rules.

Numbers are always Python floats, strings are ``str``, ``null`` is ``None``
and ``undefined`` is the ``UNDEFINED`` singleton. Objects, arrays and
functions are the ``JSObject`` family defined here.
"""

import math
import re
from typing import Any, Callable, Optional

from jsfold.errors import EvaluationError, JSException

_RADIX_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"
_DECIMAL_LITERAL = re.compile(r"[+-]?(?:Infinity|(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)\Z")
_PREFIXED_LITERALS = (
    (re.compile(r"0[xX]([0-9a-fA-F]+)\Z"), 16),
    (re.compile(r"0[oO]([0-7]+)\Z"), 8),
    (re.compile(r"0[bB]([01]+)\Z"), 2),
)


class JSUndefined:
    """The JavaScript ``undefined`` value."""

    _instance: Optional["JSUndefined"] = None

    def __new__(cls) -> "JSUndefined":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "undefined"

    def __bool__(self) -> bool:
        return False


UNDEFINED = JSUndefined()


def array_index(key: str) -> Optional[int]:
    """Integer index denoted by a property key, if it is a canonical one."""
    if key.isdigit() and (key == "0" or not key.startswith("0")):
        return int(key)
    return None


class JSObject:
    """Plain JavaScript object with string-keyed own properties."""

    def __init__(self, properties: Optional[dict[str, Any]] = None):
        self.properties: dict[str, Any] = dict(properties or {})

    def get(self, key: str) -> Any:
        return self.properties.get(key, UNDEFINED)

    def put(self, key: str, value: Any) -> None:
        self.properties[key] = value

    def has(self, key: str) -> bool:
        return key in self.properties

    def delete(self, key: str) -> bool:
        self.properties.pop(key, None)
        return True

    def keys(self) -> list[str]:
        return list(self.properties)


class JSArray(JSObject):
    """JavaScript array backed by a Python list."""

    def __init__(self, elements: Optional[list[Any]] = None):
        super().__init__()
        self.elements: list[Any] = list(elements or [])

    def get(self, key: str) -> Any:
        if key == "length":
            return float(len(self.elements))
        index = array_index(key)
        if index is not None:
            return self.elements[index] if index < len(self.elements) else UNDEFINED
        return super().get(key)

    def put(self, key: str, value: Any) -> None:
        index = array_index(key)
        if index is not None:
            if index >= len(self.elements):
                self.elements.extend([UNDEFINED] * (index + 1 - len(self.elements)))
            self.elements[index] = value
        elif key == "length":
            length = to_number(value)
            if not length.is_integer() or length < 0:
                raise throw_error("RangeError", "Invalid array length")
            size = int(length)
            del self.elements[size:]
            self.elements.extend([UNDEFINED] * (size - len(self.elements)))
        else:
            super().put(key, value)

    def has(self, key: str) -> bool:
        index = array_index(key)
        if index is not None:
            return index < len(self.elements)
        return key == "length" or super().has(key)

    def delete(self, key: str) -> bool:
        index = array_index(key)
        if index is not None:
            if index < len(self.elements):
                self.elements[index] = UNDEFINED
            return True
        return super().delete(key)

    def keys(self) -> list[str]:
        return [str(i) for i in range(len(self.elements))] + super().keys()


class JSFunction(JSObject):
    """Closure over an esprima function node and its defining environment."""

    def __init__(self, node: Any, env: Any, name: str = ""):
        super().__init__()
        self.node = node
        self.env = env
        self.name = name

    @property
    def is_arrow(self) -> bool:
        return self.node.type == "ArrowFunctionExpression"


class NativeFunction(JSObject):
    """Built-in function implemented in Python.

    ``impl`` receives ``(interpreter, this, args)``.
    """

    def __init__(self, name: str, impl: Callable[[Any, Any, list[Any]], Any]):
        super().__init__()
        self.name = name
        self.impl = impl


def is_callable(value: Any) -> bool:
    return isinstance(value, (JSFunction, NativeFunction))


def throw_error(kind: str, message: str) -> JSException:
    """Build a JavaScript error object wrapped in a raisable exception."""
    error = JSObject({"name": kind, "message": message})
    return JSException(error, f"{kind}: {message}")


def to_js_value(value: Any) -> Any:
    """Normalize a Python literal value (as stored by esprima) to the value model."""
    if isinstance(value, bool) or value is None or isinstance(value, str):
        return value
    if isinstance(value, (int, float)):
        return float(value)
    return value


def type_of(value: Any) -> str:
    """Result of the ``typeof`` operator."""
    if value is UNDEFINED:
        return "undefined"
    if value is None:
        return "object"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if is_callable(value):
        return "function"
    return "object"


def _spec_type(value: Any) -> str:
    if value is None:
        return "null"
    kind = type_of(value)
    return "object" if kind == "function" else kind


def to_boolean(value: Any) -> bool:
    if value is UNDEFINED or value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return not (value == 0 or math.isnan(value))
    if isinstance(value, str):
        return len(value) > 0
    return True


def to_primitive(value: Any) -> Any:
    """ToPrimitive for the objects the sandbox can produce."""
    if not isinstance(value, JSObject):
        return value
    if isinstance(value, JSArray):
        return ",".join(
            "" if item is UNDEFINED or item is None else to_string(item)
            for item in value.elements
        )
    if is_callable(value):
        raise EvaluationError("cannot convert a function to a primitive")
    return "[object Object]"


def string_to_number(text: str) -> float:
    stripped = text.strip().strip("\ufeff")
    if not stripped:
        return 0.0
    for pattern, radix in _PREFIXED_LITERALS:
        match = pattern.match(stripped)
        if match:
            return float(int(match.group(1), radix))
    if _DECIMAL_LITERAL.match(stripped):
        return float(stripped.replace("Infinity", "inf"))
    return math.nan


def to_number(value: Any) -> float:
    if value is UNDEFINED:
        return math.nan
    if value is None:
        return 0.0
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        return string_to_number(value)
    return to_number(to_primitive(value))


def to_integer(value: Any) -> float:
    number = to_number(value)
    if math.isnan(number):
        return 0.0
    if math.isinf(number):
        return number
    return float(math.trunc(number))


def to_uint32(value: Any) -> int:
    number = to_number(value)
    if math.isnan(number) or math.isinf(number):
        return 0
    return math.trunc(number) % 2 ** 32


def to_int32(value: Any) -> int:
    number = to_uint32(value)
    return number - 2 ** 32 if number >= 2 ** 31 else number


def number_to_string(value: float) -> str:
    """Number::toString with radix 10."""
    if math.isnan(value):
        return "NaN"
    if value == 0:
        return "0"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    if value < 0:
        return "-" + number_to_string(-value)
    if float(value).is_integer() and value < 2 ** 53:
        return str(int(value))

    mantissa, _, exponent = repr(float(value)).partition("e")
    whole, _, fraction = mantissa.partition(".")
    digits = whole + fraction
    point = len(whole) + (int(exponent) if exponent else 0)
    stripped = digits.lstrip("0")
    point -= len(digits) - len(stripped)
    digits = stripped.rstrip("0") or "0"
    count = len(digits)

    if count <= point <= 21:
        return digits + "0" * (point - count)
    if 0 < point <= 21:
        return digits[:point] + "." + digits[point:]
    if -6 < point <= 0:
        return "0." + "0" * -point + digits
    exp = point - 1
    head = digits if count == 1 else digits[0] + "." + digits[1:]
    return f"{head}e{'+' if exp >= 0 else '-'}{abs(exp)}"


def number_to_radix(value: float, radix: int) -> str:
    """Number::toString with an explicit radix.

    Fraction digits are produced until they no longer tell ``value`` apart
    from its neighbouring doubles, then rounded half to even.
    """
    if radix == 10:
        return number_to_string(value)
    if not 2 <= radix <= 36:
        raise throw_error("RangeError", "toString() radix must be between 2 and 36")
    if math.isnan(value) or math.isinf(value):
        return number_to_string(value)
    if value == 0:
        return "0"
    if value < 0:
        return "-" + number_to_radix(-value, radix)

    integer = float(math.floor(value))
    fraction = value - integer
    delta = max(0.5 * (math.nextafter(value, math.inf) - value), math.nextafter(0.0, 1.0))
    fraction_digits: list[int] = []
    while fraction >= delta:
        fraction *= radix
        delta *= radix
        digit = int(fraction)
        fraction_digits.append(digit)
        fraction -= digit
        if (fraction > 0.5 or (fraction == 0.5 and digit & 1)) and fraction + delta > 1:
            while fraction_digits:
                digit = fraction_digits.pop() + 1
                if digit < radix:
                    fraction_digits.append(digit)
                    break
            else:
                integer += 1
            break

    # Digits below the 53-bit mantissa are zero.
    whole = []
    while integer / radix >= 2 ** 53:
        integer /= radix
        whole.append("0")
    while True:
        remainder = math.fmod(integer, radix)
        whole.append(_RADIX_DIGITS[int(remainder)])
        integer = (integer - remainder) / radix
        if integer <= 0:
            break
    text = "".join(reversed(whole))
    if fraction_digits:
        text += "." + "".join(_RADIX_DIGITS[digit] for digit in fraction_digits)
    return text


def to_string(value: Any) -> str:
    if value is UNDEFINED:
        return "undefined"
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return number_to_string(float(value))
    if isinstance(value, str):
        return value
    return to_string(to_primitive(value))


def to_property_key(value: Any) -> str:
    return value if isinstance(value, str) else to_string(value)


def strict_equals(left: Any, right: Any) -> bool:
    kind = _spec_type(left)
    if kind != _spec_type(right):
        return False
    if kind in ("undefined", "null"):
        return True
    if kind == "number":
        return float(left) == float(right)
    if kind in ("string", "boolean"):
        return left == right
    return left is right


def loose_equals(left: Any, right: Any) -> bool:
    """Abstract equality comparison (``==``)."""
    left_kind, right_kind = _spec_type(left), _spec_type(right)
    if left_kind == right_kind:
        return strict_equals(left, right)
    if {left_kind, right_kind} == {"undefined", "null"}:
        return True
    if left_kind == "number" and right_kind == "string":
        return float(left) == to_number(right)
    if left_kind == "string" and right_kind == "number":
        return to_number(left) == float(right)
    if left_kind == "boolean":
        return loose_equals(to_number(left), right)
    if right_kind == "boolean":
        return loose_equals(left, to_number(right))
    if left_kind == "object" and right_kind in ("number", "string"):
        return loose_equals(to_primitive(left), right)
    if right_kind == "object" and left_kind in ("number", "string"):
        return loose_equals(left, to_primitive(right))
    return False


def add(left: Any, right: Any) -> Any:
    left, right = to_primitive(left), to_primitive(right)
    if isinstance(left, str) or isinstance(right, str):
        return to_string(left) + to_string(right)
    return to_number(left) + to_number(right)


def _divide(left: float, right: float) -> float:
    if right != 0:
        return left / right
    if left == 0 or math.isnan(left):
        return math.nan
    return math.copysign(1.0, left) * math.copysign(1.0, right) * math.inf


def _remainder(left: float, right: float) -> float:
    if right == 0 or math.isinf(left) or math.isnan(left) or math.isnan(right):
        return math.nan
    return math.fmod(left, right)


def _power(left: float, right: float) -> float:
    if math.isnan(right):
        return math.nan
    try:
        result = math.pow(left, right)
    except OverflowError:
        return math.inf
    except ValueError:
        return math.nan
    return result


def _compare(left: Any, right: Any, operator: str) -> bool:
    left, right = to_primitive(left), to_primitive(right)
    if not (isinstance(left, str) and isinstance(right, str)):
        left, right = to_number(left), to_number(right)
        if math.isnan(left) or math.isnan(right):
            return False
    if operator == "<":
        return left < right
    if operator == ">":
        return left > right
    if operator == "<=":
        return left <= right
    return left >= right


def _shift(operator: str, left: Any, right: Any) -> float:
    count = to_uint32(right) & 31
    if operator == "<<":
        return float(to_int32(to_int32(left) << count))
    if operator == ">>":
        return float(to_int32(left) >> count)
    return float(to_uint32(left) >> count)


def _bitwise(operator: str, left: Any, right: Any) -> float:
    a, b = to_int32(left), to_int32(right)
    if operator == "&":
        return float(to_int32(a & b))
    if operator == "|":
        return float(to_int32(a | b))
    return float(to_int32(a ^ b))


def binary_operation(operator: str, left: Any, right: Any) -> Any:
    """Apply a JavaScript binary operator to two values."""
    if operator == "+":
        return add(left, right)
    if operator in ("==", "!="):
        return loose_equals(left, right) == (operator == "==")
    if operator in ("===", "!=="):
        return strict_equals(left, right) == (operator == "===")
    if operator in ("-", "*", "/", "%", "**"):
        a, b = to_number(left), to_number(right)
        if operator == "-":
            return a - b
        if operator == "*":
            return a * b
        if operator == "/":
            return _divide(a, b)
        if operator == "%":
            return _remainder(a, b)
        return _power(a, b)
    if operator in ("<<", ">>", ">>>"):
        return _shift(operator, left, right)
    if operator in ("&", "|", "^"):
        return _bitwise(operator, left, right)
    if operator in ("<", ">", "<=", ">="):
        return _compare(left, right, operator)
    if operator == "in":
        if not isinstance(right, JSObject):
            raise throw_error("TypeError", "Cannot use 'in' operator to search for a key in a primitive")
        return right.has(to_property_key(left))
    raise EvaluationError(f"operator {operator} is not supported by the sandbox")
