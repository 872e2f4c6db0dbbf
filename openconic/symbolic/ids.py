"""Identifier allocation for parameters, variables and auxiliary variables.

Ids are drawn from an :class:`IdAllocator` owned by a :class:`Session`. The
ids a session hands out are strictly increasing and never reused, and they fix
the column order of the assembled constraint matrix.

Sessions nest::

    with Session() as session:
        x = Variable(3)        # ids come from session.allocator
        p = Parameter(3)

Outside of any ``with`` block the root session is used. Leaf constructors also
accept an explicit ``allocator=`` argument, which bypasses the session stack.

Note:
    Allocators are plain mutable counters. A session must only be used by one
    thread of control at a time.
"""

from typing import List, Optional


class IdAllocator:
    """Monotonic integer counter.

    Attributes:
        last_id: The most recently issued id, or ``start - 1`` before the first call
    """

    def __init__(self, start: int = 0):
        self.last_id = start - 1

    def next_id(self) -> int:
        """Return a fresh id, strictly greater than every id issued before."""
        self.last_id += 1
        return self.last_id

    def __repr__(self):
        return f"IdAllocator(last_id={self.last_id})"


class Session:
    """Scope that owns an id allocator.

    Args:
        allocator: Allocator to use; a fresh one starting at 0 by default
    """

    def __init__(self, allocator: Optional[IdAllocator] = None):
        self.allocator = allocator if allocator is not None else IdAllocator()

    def next_id(self) -> int:
        return self.allocator.next_id()

    def __enter__(self) -> "Session":
        _SESSION_STACK.append(self)
        return self

    def __exit__(self, exc_type, exc, tb):
        # Sessions are exited in LIFO order by the with statement.
        _SESSION_STACK.pop()
        return False

    def __repr__(self):
        return f"Session({self.allocator!r})"


_ROOT_SESSION = Session()
_SESSION_STACK: List[Session] = [_ROOT_SESSION]


def current_session() -> Session:
    """Return the innermost active session."""
    return _SESSION_STACK[-1]


def get_id(allocator: Optional[IdAllocator] = None) -> int:
    """Allocate the next id from ``allocator`` or from the current session."""
    if allocator is not None:
        return allocator.next_id()
    return current_session().next_id()
