"""
CHIP-8 VM: Subroutine Call Stack

Return addresses live outside the 4K address space, in a plain list.
2NNN pushes the address of the CALL itself; 00EE pops it back into PC
and the normal post-increment resumes at the instruction after the call.
"""

from typing import List

from ..errors import StackUnderflow


class CallStack:
    """LIFO of saved program counter values."""

    def __init__(self):
        self._frames: List[int] = []

    def __len__(self) -> int:
        return len(self._frames)

    def __bool__(self) -> bool:
        return bool(self._frames)

    @property
    def depth(self) -> int:
        return len(self._frames)

    def push(self, addr: int):
        self._frames.append(addr)

    def pop(self) -> int:
        if not self._frames:
            raise StackUnderflow("RET with empty call stack")
        return self._frames.pop()

    def peek(self) -> int:
        if not self._frames:
            raise StackUnderflow("Call stack is empty")
        return self._frames[-1]

    def frames(self) -> List[int]:
        """Saved addresses, outermost first."""
        return list(self._frames)

    def clear(self):
        self._frames.clear()
