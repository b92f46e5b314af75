"""
bfsynth Core Interpreter

This module implements the safety-hardened interpreter for the 8-instruction
tape language. Any string is a valid program: characters outside the
instruction set are comments, an unmatched '[' runs to the end of the
program and an unmatched ']' is skipped. The only way a run can fail is by
a single loop exceeding the loop limit, which is reported as a Failure
carrying the partial state instead of an exception.
"""

from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, Iterable, List, Optional, Union
import logging

from .config import get_config
from .tape import Tape

logger = logging.getLogger(__name__)

INSTRUCTIONS = "<>+-.,[]"
DEFAULT_LOOP_LIMIT = 10000
LOOP_LIMIT_EXCEEDED = "LoopLimitExceeded"

InputData = Union[bytes, bytearray, str, Iterable[int]]


class LoopLimitExceeded(RuntimeError):
    """Raised inside a run when one loop iterates more than the loop limit."""

    def __init__(self, limit: int, iterations: int):
        super().__init__(f"Loop limit exceeded: {iterations} > {limit}")
        self.limit = limit
        self.iterations = iterations


@dataclass
class InterpreterState:
    """
    Mutable execution state of a single run.

    The loop counter stack has one entry per currently executing loop,
    outermost first.
    """
    code: str
    tape: Tape = field(default_factory=Tape)
    input: Deque[int] = field(default_factory=deque)
    output: List[int] = field(default_factory=list)
    loop_counters: List[int] = field(default_factory=list)
    cursor: int = 0

    @property
    def remaining_code(self) -> str:
        return self.code[self.cursor:]

    def snapshot(self) -> 'InterpreterState':
        """Return a deep copy that later execution cannot modify."""
        return InterpreterState(
            code=self.code,
            tape=self.tape.copy(),
            input=deque(self.input),
            output=list(self.output),
            loop_counters=list(self.loop_counters),
            cursor=self.cursor,
        )


@dataclass(frozen=True)
class Success:
    """Terminal result of a run that reached the end of the program."""
    output: List[int]

    @property
    def ok(self) -> bool:
        return True

    @property
    def text(self) -> str:
        return bytes(self.output).decode('latin-1')


@dataclass(frozen=True)
class Failure:
    """Terminal result of an aborted run, with the state at the abort."""
    reason: str
    state: InterpreterState

    @property
    def ok(self) -> bool:
        return False

    @property
    def output(self) -> List[int]:
        return self.state.output


InterpreterResult = Union[Success, Failure]


def as_program(code: Union[str, bytes, bytearray]) -> str:
    """Coerce program text to str; bytes are decoded one character per byte."""
    if isinstance(code, (bytes, bytearray)):
        return bytes(code).decode('latin-1')
    return code


def as_input(input_data: Optional[InputData]) -> bytes:
    """
    Coerce interpreter input to bytes.

    Raises:
        ValueError: If an integer input value is outside 0-255
    """
    if input_data is None:
        return b""
    if isinstance(input_data, str):
        return input_data.encode('latin-1')
    return bytes(input_data)


def match_brackets(code: str) -> Dict[int, int]:
    """
    Map the index of every '[' to the index of its matching ']'.

    An unmatched '[' maps to len(code): its body is the rest of the program.
    Unmatched ']' characters do not appear in the table.
    """
    jumps: Dict[int, int] = {}
    stack: List[int] = []
    for i, ch in enumerate(code):
        if ch == '[':
            stack.append(i)
        elif ch == ']' and stack:
            jumps[stack.pop()] = i
    for i in stack:
        jumps[i] = len(code)
    return jumps


class Interpreter:
    """
    Loop-limited interpreter for the tape language.

    Features:
    - Iterative execution over a cursor (no recursion per instruction or loop)
    - Relaxed bracket matching
    - Per-loop iteration limit aborting the whole run
    """

    def __init__(self, loop_limit: Optional[int] = None):
        if loop_limit is None:
            loop_limit = get_config().interpreter.loop_limit
        if loop_limit < 0:
            raise ValueError(f"loop_limit must be non-negative, got {loop_limit}")
        self.loop_limit = loop_limit

        # Instructions that only touch the tape
        self.tape_operations = {
            '<': Tape.move_left,
            '>': Tape.move_right,
            '+': Tape.increment,
            '-': Tape.decrement,
        }

    def run(self, code: Union[str, bytes], input_data: Optional[InputData] = None) -> InterpreterResult:
        """
        Execute a program against a fresh tape.

        Args:
            code: Program text; any character outside the instruction set is inert
            input_data: Bytes consumed front-to-back by ','

        Returns:
            Success with the output, or Failure with the state at the abort
        """
        program = as_program(code)
        state = InterpreterState(code=program, input=deque(as_input(input_data)))

        try:
            self._execute(state, match_brackets(program))
        except LoopLimitExceeded as e:
            logger.debug(f"Run aborted: {e}")
            return Failure(reason=LOOP_LIMIT_EXCEEDED, state=state.snapshot())

        return Success(output=state.output)

    def _execute(self, state: InterpreterState, jumps: Dict[int, int]) -> None:
        """Run state.code to completion, raising LoopLimitExceeded on abort."""
        code = state.code
        tape = state.tape
        end_of_code = len(code)
        # (index of '[', index of the loop's end) for each active loop
        frames: List[tuple] = []

        while True:
            if frames and state.cursor == frames[-1][1]:
                open_at, loop_end = frames[-1]
                if tape.is_zero():
                    frames.pop()
                    state.loop_counters.pop()
                    state.cursor = min(loop_end + 1, end_of_code)
                else:
                    self._next_iteration(state, open_at)
                    state.cursor = open_at + 1
                continue

            if state.cursor >= end_of_code:
                return

            ch = code[state.cursor]
            operation = self.tape_operations.get(ch)

            if operation is not None:
                operation(tape)

            elif ch == '.':
                state.output.append(tape.get())

            elif ch == ',':
                tape.put(state.input.popleft() if state.input else 0)

            elif ch == '[':
                loop_end = jumps[state.cursor]
                state.loop_counters.append(0)
                if tape.is_zero():
                    state.loop_counters.pop()
                    state.cursor = min(loop_end + 1, end_of_code)
                    continue
                frames.append((state.cursor, loop_end))
                self._next_iteration(state, state.cursor)

            # Anything else, including an unmatched ']', is a no-op
            state.cursor += 1

    def _next_iteration(self, state: InterpreterState, open_at: int) -> None:
        """Count one more iteration of the innermost loop."""
        state.loop_counters[-1] += 1
        if state.loop_counters[-1] > self.loop_limit:
            state.cursor = open_at
            raise LoopLimitExceeded(self.loop_limit, state.loop_counters[-1])


def run(code: Union[str, bytes], input_data: Optional[InputData] = None,
        loop_limit: int = DEFAULT_LOOP_LIMIT) -> InterpreterResult:
    """Execute a program with the given loop limit. See Interpreter.run."""
    return Interpreter(loop_limit=loop_limit).run(code, input_data)
