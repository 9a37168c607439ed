"""Find the common type of columns that have to be merged.

When columns coming from different places end up being
stored in the same column, like when concatenating tables
or melting multiple columns into one, their values must
be converted to one type that can represent all of them.

The rules only widen types when no value can lose precision:

* Identical types are kept as they are.
* The ``null`` type (a column with only nulls) adapts to any other type.
* Integers are widened to the largest integer involved,
  mixing signed and unsigned requires a signed type
  that is wider than the unsigned one.
* Integers mixed with floats become ``float64``
  only if the integers have at most 32 bits,
  as ``float64`` can't represent all ``int64`` values.
* ``string`` and ``large_string`` become ``large_string``.

Anything else is rejected with a :class:`TypeMismatchError`.

>>> import pyarrow as pa
>>> common_type([pa.int8(), pa.int32()])
DataType(int32)
>>> common_type([pa.int16(), pa.float32()])
DataType(double)
"""

from typing import Iterable

import pyarrow as pa

from ..errors import TypeMismatchError

_SIGNED_BY_WIDTH = {8: pa.int8(), 16: pa.int16(), 32: pa.int32(), 64: pa.int64()}


def common_type(types: Iterable[pa.DataType], context: str = "columns") -> pa.DataType:
    """Compute the narrowest type that can hold values of all the given types.

    :param types: The types that have to be combined.
    :param context: Description of what is being combined, used in errors.
    """
    types = list(types)
    concrete = [t for t in types if not pa.types.is_null(t)]
    if not concrete:
        return pa.null()

    first = concrete[0]
    if all(t.equals(first) for t in concrete):
        return first

    if all(pa.types.is_integer(t) for t in concrete):
        return _common_integer(concrete, context)

    if all(pa.types.is_integer(t) or pa.types.is_floating(t) for t in concrete):
        integers = [t for t in concrete if pa.types.is_integer(t)]
        if any(t.bit_width > 32 for t in integers):
            raise TypeMismatchError(
                f"Can't combine {context} of types {_names(concrete)}: "
                "64 bit integers can't be represented as floats without precision loss"
            )
        if integers:
            return pa.float64()
        return max(concrete, key=lambda t: t.bit_width)

    if all(pa.types.is_string(t) or pa.types.is_large_string(t) for t in concrete):
        return pa.large_string()

    raise TypeMismatchError(
        f"Can't combine {context} of incompatible types {_names(concrete)}"
    )


def _common_integer(types: list[pa.DataType], context: str) -> pa.DataType:
    signed = [t for t in types if pa.types.is_signed_integer(t)]
    unsigned = [t for t in types if pa.types.is_unsigned_integer(t)]
    if not signed:
        return max(unsigned, key=lambda t: t.bit_width)
    width = max(t.bit_width for t in signed)
    if unsigned:
        # A signed type must be strictly wider to hold every unsigned value.
        width = max(width, max(t.bit_width for t in unsigned) * 2)
    if width > 64:
        raise TypeMismatchError(
            f"Can't combine {context} of types {_names(types)}: "
            "no signed integer can hold all uint64 values"
        )
    return _SIGNED_BY_WIDTH[width]


def coerce_array(array: pa.Array, target: pa.DataType) -> pa.Array:
    """Convert an array to the target type, doing nothing when it already has it."""
    if array.type.equals(target):
        return array
    return array.cast(target)


def _names(types: list[pa.DataType]) -> list[str]:
    return [str(t) for t in types]
