"""Provide insights about Python objects."""

import inspect
from typing import Any


def get_qualname(obj: Any) -> str:
    """Get the qualified name of the given object.

    Will return the name of the object and the
    name of the module and class it belongs to.

    For functions or methods, this will return
    something like `module.class.method` or
    `module.function`. Objects that don't come from
    a module, like lambdas defined in a shell or
    compiled functions, are reported by their name only.

    >>> class Rates:
    ...   def lookup(self, date):
    ...     pass
    >>> get_qualname(Rates.lookup)
    'panelground.utils.inspect.Rates.lookup'
    >>> get_qualname(Rates().lookup)
    'panelground.utils.inspect.Rates.lookup'
    """
    module_obj = inspect.getmodule(obj)
    if inspect.ismodule(obj):
        return obj.__name__

    if inspect.ismethod(obj) or inspect.isfunction(obj):
        if getattr(obj, "__self__", None) is not None:
            name = f"{obj.__self__.__class__.__name__}.{obj.__name__}"
        else:
            name = obj.__qualname__
    elif inspect.isclass(obj):
        name = obj.__name__
    else:
        name = getattr(obj, "__name__", None) or obj.__class__.__name__

    if module_obj is None:
        return name
    return f"{module_obj.__name__}.{name}"
