"""
Explicit work-stack driver for recursive algorithms.

A step is a generator. It yields a child generator whenever it needs a sub
result and receives that result back from the `yield` expression; the
generator's return value becomes the result handed to its parent. Exceptions
raised by a child are thrown into the parent, so a parent may annotate the
error before letting it continue upward.
"""

from typing import Any, Generator, List, Optional

Step = Generator[Any, Any, Any]


def run(root: Step) -> Any:
    stack: List[Step] = [root]
    value: Any = None
    error: Optional[BaseException] = None
    while stack:
        top = stack[-1]
        try:
            if error is not None:
                pending, error = error, None
                child = top.throw(pending)
            else:
                child = top.send(value)
        except StopIteration as stop:
            stack.pop()
            value = stop.value
            continue
        except Exception as exc:
            stack.pop()
            if not stack:
                raise
            error = exc
            continue
        stack.append(child)
        value = None
    return value


def done(value: Any = None) -> Step:
    """A step that immediately produces `value`."""
    return value
    yield
