"""Functions callable from call-style interpolation: {{name(arg, ...)}}."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from .token_types import RestTestError

InterpFn = Callable[[List[str]], str]

class FunctionError(RestTestError):
    pass

@dataclass(frozen=True)
class InterpFunction:
    fn: InterpFn
    min_args: int = 0
    max_args: Optional[int] = None

    def __call__(self, name: str, args: List[str]) -> str:
        if len(args) < self.min_args or (self.max_args is not None and len(args) > self.max_args):
            if self.max_args == self.min_args:
                expected = str(self.min_args)
            elif self.max_args is None:
                expected = f"at least {self.min_args}"
            else:
                expected = f"{self.min_args} to {self.max_args}"
            raise FunctionError(f"{name}() expects {expected} argument(s); got {len(args)}")

        return self.fn(args)

FUNCTIONS: Dict[str, InterpFunction] = {}

def register_function(name: str, *, min_args: int = 0, max_args: Optional[int] = None):
    def dec(fn: InterpFn):
        FUNCTIONS[name] = InterpFunction(fn=fn, min_args=min_args, max_args=max_args)
        return fn

    return dec

def lookup(name: str) -> Optional[InterpFunction]:
    return FUNCTIONS.get(name)

@register_function("env", min_args=1, max_args=2)
def fn_env(args: List[str]) -> str:
    value = os.environ.get(args[0])

    if value is not None:
        return value

    if len(args) == 2:
        return args[1]

    raise FunctionError(f"Environment variable '{args[0]}' is not set")

@register_function("upper", min_args=1, max_args=1)
def fn_upper(args: List[str]) -> str:
    return args[0].upper()

@register_function("lower", min_args=1, max_args=1)
def fn_lower(args: List[str]) -> str:
    return args[0].lower()

@register_function("trim", min_args=1, max_args=1)
def fn_trim(args: List[str]) -> str:
    return args[0].strip()

@register_function("concat")
def fn_concat(args: List[str]) -> str:
    return "".join(args)
